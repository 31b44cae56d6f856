"""
JSON-RPC 2.0 dispatcher.

Methods are plain functions registered by name and called with an RPCContext
and the request params. Service exceptions become JSON-RPC errors whose
data.status carries a gRPC-style status name (UNAUTHENTICATED, NOT_FOUND...).
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from services.auth_service import AuthService
from services.exceptions import InternalServiceError, ServiceError
from services.user_service import UserService
from utils.logger import get_logger

logger = get_logger(__name__)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
APPLICATION_ERROR = -32000


class RPCError(Exception):

    def __init__(self, code: int, message: str, status: str = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        error = {"code": self.code, "message": self.message}
        if self.status:
            error["data"] = {"status": self.status}
        return error


def invalid_argument(message: str) -> RPCError:
    return RPCError(INVALID_PARAMS, message, "INVALID_ARGUMENT")


@dataclass
class RPCContext:
    auth: AuthService
    users: UserService


Handler = Callable[[RPCContext, Dict[str, Any]], Any]


class RPCDispatcher:

    def __init__(self):
        self._methods: Dict[str, Handler] = {}

    def method(self, name: str):
        """Decorator registering a handler under a method name like "AuthService.Login"."""
        def register(func: Handler) -> Handler:
            self._methods[name] = func
            return func
        return register

    @property
    def method_names(self):
        return sorted(self._methods)

    def dispatch(self, payload: Any, context: RPCContext) -> Optional[Any]:
        """
        Handle a single request or a batch.

        Returns the response object (a list for batches), or None when every
        request was a notification.
        """
        if isinstance(payload, list):
            if not payload:
                return _error_response(None, RPCError(INVALID_REQUEST, "Empty batch"))
            responses = [r for r in (self._dispatch_one(item, context) for item in payload) if r is not None]
            return responses or None

        return self._dispatch_one(payload, context)

    def _dispatch_one(self, request: Any, context: RPCContext) -> Optional[Dict[str, Any]]:
        if not isinstance(request, dict) or request.get("jsonrpc") != "2.0" \
                or not isinstance(request.get("method"), str):
            return _error_response(None, RPCError(INVALID_REQUEST, "Invalid request"))

        response = self._call(request, context)
        # notifications never get a reply, not even an error
        if "id" not in request:
            return None
        return response

    def _call(self, request: Dict[str, Any], context: RPCContext) -> Dict[str, Any]:
        request_id = request.get("id")
        method = request["method"]

        params = request.get("params", {})
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return _error_response(request_id, invalid_argument("Params must be an object"))

        handler = self._methods.get(method)
        if handler is None:
            return _error_response(request_id, RPCError(METHOD_NOT_FOUND, f"Method not found: {method}"))

        try:
            result = handler(context, params)
        except RPCError as e:
            return _error_response(request_id, e)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            return _error_response(request_id, invalid_argument(f"{field}: {first['msg']}"))
        except InternalServiceError as e:
            logger.error(f"RPC {method} failed: {e}", extra={"rpc_method": method})
            return _error_response(request_id, RPCError(APPLICATION_ERROR, InternalServiceError.message, e.rpc_status))
        except ServiceError as e:
            return _error_response(request_id, RPCError(APPLICATION_ERROR, e.message, e.rpc_status))
        except Exception as e:
            logger.error(
                f"Unhandled exception in RPC {method}: {str(e)}",
                extra={"rpc_method": method, "error_type": type(e).__name__},
                exc_info=True
            )
            return _error_response(request_id, RPCError(INTERNAL_ERROR, "Internal server error", "INTERNAL"))

        return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error_response(request_id: Any, error: RPCError) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": error.to_dict()}

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from starlette import status
from starlette.concurrency import run_in_threadpool
from rpc.handlers import dispatcher
from rpc.server import PARSE_ERROR, RPCContext
from utils.deps import auth_service_dependency, user_service_dependency


router = APIRouter(
    tags=["rpc"]
)


@router.post("/rpc")
async def rpc_endpoint(request: Request, auth: auth_service_dependency, users: user_service_dependency):
    """
    JSON-RPC 2.0 entry point. Transport-level status is always 200; failures
    are reported in the JSON-RPC error object.
    """
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse({
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": PARSE_ERROR, "message": "Parse error"}
        })

    # handlers block on the database and the key-value store
    result = await run_in_threadpool(dispatcher.dispatch, payload, RPCContext(auth=auth, users=users))

    if result is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return JSONResponse(result)

from passlib.context import CryptContext

bcrypt_context = CryptContext(schemes=['bcrypt'], deprecated='auto')

# bcrypt only looks at the first 72 bytes of input
BCRYPT_MAX_LENGTH = 72


def _bcrypt_input(password: str) -> bytes:
    return password.encode('utf-8')[:BCRYPT_MAX_LENGTH]


def get_password_hash(password: str) -> str:
    return bcrypt_context.hash(_bcrypt_input(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Constant-time comparison of a plaintext password against a bcrypt hash.

    A malformed or unknown stored hash counts as a mismatch.
    """
    try:
        return bcrypt_context.verify(_bcrypt_input(plain_password), hashed_password)
    except ValueError:
        return False

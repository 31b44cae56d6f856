import uuid
from core.database import Base
from sqlalchemy import Column, String, Uuid
from models.mixins import CreatedAtMixin, UpdatedAtMixin
from utils.hashing import verify_password

class User(Base, CreatedAtMixin, UpdatedAtMixin):
    __tablename__ = "users"

    #pk
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    email = Column(String, unique=True, nullable=False, index=True)
    # never serialized outward, see schemas.user_schemas.UserResponse
    hashed_password = Column(String, nullable=False)
    first_name = Column(String)
    last_name = Column(String)

    def check_password(self, plain_password: str) -> bool:
        return verify_password(plain_password, self.hashed_password)

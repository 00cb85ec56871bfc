from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from sealed.database import Base
from sealed.services.crypto_utils import generate_secret_id


class Secret(Base):
    """
    Ciphertext held on behalf of a sender.

    The server never sees the key. A row that is consumed (no views left) or
    past ``expires_at`` is treated exactly like a row that never existed.
    """

    __tablename__ = "secrets"

    id: Mapped[str] = mapped_column(String(22), primary_key=True, default=generate_secret_id)
    burn_token_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Encrypted payload
    ciphertext: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    iv: Mapped[bytes] = mapped_column(LargeBinary(12), nullable=False)
    auth_tag: Mapped[bytes] = mapped_column(LargeBinary(16), nullable=False)
    passphrase_protected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Lifecycle
    remaining_views: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)

    @property
    def consumed(self) -> bool:
        return self.remaining_views <= 0

"""FileRecord model - file metadata (actual bytes live in the blob store)."""
from sqlalchemy import String, BigInteger, Text
from sqlalchemy.orm import Mapped, mapped_column
from earlbox.models.base import Base, CreatedAtMixin


class FileRecord(Base, CreatedAtMixin):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    filename: Mapped[str] = mapped_column(String(300), nullable=False, unique=True)
    original_name: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    file_path: Mapped[str] = mapped_column(String(1000), nullable=False)

    def __repr__(self) -> str:
        return f"<FileRecord {self.id} {self.filename!r} {self.file_size}B>"

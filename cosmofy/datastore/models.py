"""
数据库模型定义
使用SQLAlchemy 2.0+的声明式映射
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """所有模型的基类"""

    pass


class StoredRecordDB(Base):
    """归一化记录表, 每条记录以JSON保存, 按 (collection, record_id) 唯一"""

    __tablename__ = "stored_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    record_id: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    __table_args__ = (
        Index("idx_collection_record", "collection", "record_id", unique=True),
    )

    def __repr__(self) -> str:
        return f"<StoredRecord(collection={self.collection}, id={self.record_id})>"

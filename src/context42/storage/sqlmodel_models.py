"""SQLModel ORM tables for generated style guides."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


class StyleGuideRecord(SQLModel, table=True):
    __tablename__ = "style_guides"  # type: ignore[bad-override]
    __table_args__ = (
        Index(
            "uq_style_guides_run_language_directory",
            "run_id",
            "language",
            "directory",
            unique=True,
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    language: str
    directory: str
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(AsyncAttrs, DeclarativeBase):
    pass


class Round(Base):
    __tablename__ = "rounds"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    tab1_label: Mapped[str] = mapped_column(Text, default="Qualifying")
    tab2_label: Mapped[str] = mapped_column(Text, default="Super Sprint")
    tab3_label: Mapped[str] = mapped_column(Text, default="Endurance")
    classes: Mapped[list] = mapped_column(JSON, default=lambda: ["junior", "pro"])

    sessions: Mapped[List["Session"]] = relationship(
        "Session", back_populates="round", cascade="all, delete-orphan", passive_deletes=True
    )


class Session(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(16))
    race_class: Mapped[str] = mapped_column(String(16))
    label: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(16), default="not-started")
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    round_id: Mapped[Optional[str]] = mapped_column(ForeignKey("rounds.id", ondelete="CASCADE"))
    is_endurance: Mapped[bool] = mapped_column(Boolean, default=False)

    round: Mapped[Optional["Round"]] = relationship("Round", back_populates="sessions")
    drivers: Mapped[List["Driver"]] = relationship(
        "Driver", back_populates="session", cascade="all, delete-orphan", passive_deletes=True
    )
    results: Mapped[List["Result"]] = relationship(
        "Result", back_populates="session", cascade="all, delete-orphan", passive_deletes=True
    )


class Driver(Base):
    __tablename__ = "drivers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    is_team: Mapped[bool] = mapped_column(Boolean, default=False)

    session: Mapped["Session"] = relationship("Session", back_populates="drivers")


class Result(Base):
    __tablename__ = "results"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"))
    driver_id: Mapped[str] = mapped_column(String(64))
    driver_name: Mapped[str] = mapped_column(Text, default="")
    position: Mapped[Optional[int]] = mapped_column(Integer)
    best_lap: Mapped[str] = mapped_column(String(16), default="")
    total_time: Mapped[str] = mapped_column(String(16), default="")
    gap: Mapped[str] = mapped_column(String(16), default="")
    lap_count: Mapped[int] = mapped_column(Integer, default=0)
    team_lap_count: Mapped[int] = mapped_column(Integer, default=0)

    session: Mapped["Session"] = relationship("Session", back_populates="results")

    __table_args__ = (UniqueConstraint("session_id", "driver_id", name="uq_session_driver"),)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"

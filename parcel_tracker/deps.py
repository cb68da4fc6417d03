from functools import lru_cache
from typing import Dict, Any

from fastapi import BackgroundTasks, Depends
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlmodel import SQLModel, Session, create_engine

from .mail import FakeMailSender, MailSender, SmtpMailSender
from .notifications import NotificationDispatcher
from .service import OrderService
from .store import OrderStore
from .tracking import TrackingIdGenerator


class Settings(BaseSettings):
    # read from the environment or .env
    DATABASE_URL: str = "sqlite:///./parcels.db"

    TRACKING_PREFIX: str = "PX"
    TRACKING_LENGTH: int = 9
    TRACKING_MAX_ATTEMPTS: int = 5

    MAIL_BACKEND: str = "fake"  # fake | smtp
    SMTP_HOST: str = ""
    SMTP_PORT: int = 465
    SMTP_USE_SSL: bool = True
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_TIMEOUT: float = 30.0
    MAIL_FROM: str = ""
    BRAND_NAME: str = "ParcelX"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()

# SQLite refuses cross-thread use unless told otherwise
connect_args: Dict[str, Any] = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=connect_args)


def init_db():
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session


def build_mail_sender(cfg: Settings) -> MailSender:
    if cfg.MAIL_BACKEND == "smtp":
        return SmtpMailSender(
            host=cfg.SMTP_HOST,
            port=cfg.SMTP_PORT,
            username=cfg.SMTP_USERNAME,
            password=cfg.SMTP_PASSWORD,
            sender=cfg.MAIL_FROM or cfg.SMTP_USERNAME,
            use_ssl=cfg.SMTP_USE_SSL,
            timeout=cfg.SMTP_TIMEOUT,
        )
    if cfg.MAIL_BACKEND == "fake":
        return FakeMailSender()
    raise ValueError(f"Unknown mail backend: {cfg.MAIL_BACKEND}")


@lru_cache
def get_mail_sender() -> MailSender:
    return build_mail_sender(settings)


def get_dispatcher(sender: MailSender = Depends(get_mail_sender)) -> NotificationDispatcher:
    return NotificationDispatcher(sender, brand=settings.BRAND_NAME)


def get_order_service(
    background: BackgroundTasks,
    session: Session = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> OrderService:
    return OrderService(
        OrderStore(session),
        dispatcher,
        generator=TrackingIdGenerator(settings.TRACKING_PREFIX, settings.TRACKING_LENGTH),
        max_id_attempts=settings.TRACKING_MAX_ATTEMPTS,
        defer=background.add_task,
    )

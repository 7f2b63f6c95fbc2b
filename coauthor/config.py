from typing import List, Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_db: str = "coauthor"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    # overrides the postgres parts when set (sqlite in tests)
    DATABASE_URL: Optional[str] = None

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    FRONTEND_URL: str = "http://localhost:5173"
    STORE_NAME: str = "Co-Author Books"

    # wallet gateway (PhonePe)
    PHONEPE_MERCHANT_ID: str = ""
    PHONEPE_SALT_KEY: str = ""
    PHONEPE_KEY_INDEX: int = 1
    PHONEPE_BASE_URL: str = "https://api-preprod.phonepe.com/apis/pg-sandbox"
    PHONEPE_CALLBACK_URL: str = "http://localhost:8000/payments/webhook"
    PHONEPE_REFUND_CALLBACK_URL: str = "http://localhost:8000/payments/refund-webhook"

    # bank verification gateway (Cashfree)
    CASHFREE_CLIENT_ID: str = ""
    CASHFREE_CLIENT_SECRET: str = ""
    CASHFREE_VERIFY_URL: str = "https://sandbox.cashfree.com/verification/bank-account/sync"

    GATEWAY_TIMEOUT_SECONDS: float = 15.0
    MAX_PURCHASE_AMOUNT: int = 500000
    STALE_PAYMENT_MINUTES: int = 15

    BREVO_API_KEY: str = ""
    MAIL_FROM: str = "no-reply@example.com"
    ADMIN_EMAILS: List[str] = []

    R2_ACCOUNT_ID: str = ""
    R2_ACCESS_KEY_ID: str = ""
    R2_SECRET_ACCESS_KEY: str = ""
    R2_BUCKET_NAME: str = ""

    @property
    def database_url(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL

        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


settings = Settings()

import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv("POSTGRES_CONNECTION_STRING", "")

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "storefront-order.events")
    FULFILMENT_EVENTS_TOPIC: str = os.getenv("FULFILMENT_EVENTS_TOPIC", "storefront-fulfilment.events")

    # Payment gateway
    RAZORPAY_BASE_URL: str = os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com")
    RAZORPAY_KEY_ID: str = os.getenv("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET: str = os.getenv("RAZORPAY_KEY_SECRET", "")
    CURRENCY: str = os.getenv("CURRENCY", "INR")

    # Admin routes
    ADMIN_API_TOKEN: str = os.getenv("ADMIN_API_TOKEN", "")

    # Pricing
    SHIPPING_FEE: Decimal = Decimal(os.getenv("SHIPPING_FEE", "5.99"))
    TAX_RATE: Decimal = Decimal(os.getenv("TAX_RATE", "0.08"))
    CHECKOUT_TAX_RATE: Decimal = Decimal(os.getenv("CHECKOUT_TAX_RATE", "0"))

    # Order numbers and retries
    ORDER_ID_FLOOR: int = int(os.getenv("ORDER_ID_FLOOR", "100000"))
    ORDER_ID_MAX_ATTEMPTS: int = int(os.getenv("ORDER_ID_MAX_ATTEMPTS", "3"))
    CART_MAX_ATTEMPTS: int = int(os.getenv("CART_MAX_ATTEMPTS", "2"))

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for the application"""
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql+asyncpg://")

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Sync URL for Alembic"""
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql://")

    @property
    def payment_gateway_configured(self) -> bool:
        return bool(self.RAZORPAY_KEY_ID and self.RAZORPAY_KEY_SECRET)


settings = Settings()

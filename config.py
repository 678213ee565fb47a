import os
import yaml

ROOT_PATH = os.path.dirname(__file__)
CONFIG_FILE_PATH = os.path.join(ROOT_PATH, "env.yaml")

if os.path.exists(CONFIG_FILE_PATH):
    with open(CONFIG_FILE_PATH, "r") as r_file:
        data = yaml.safe_load(r_file) or dict()
else:
    data = dict()


class ApplicationConfig:
    DB_URI = data.get("DB_URI", "sqlite+aiosqlite:///./test.db")
    API_PORT = data.get("API_PORT", 8000)
    API_HOST = data.get("API_HOST", "0.0.0.0")
    CORS_ORIGINS = data.get("CORS_ORIGINS", [])
    CORS_ALLOW_CREDENTIALS = data.get("CORS_ALLOW_CREDENTIALS", True)
    LOG_LEVEL = data.get("LOG_LEVEL", "INFO")

    # Invoicing
    INVOICE_CURRENCY = data.get("INVOICE_CURRENCY", "USD")
    INVOICE_DUE_DAYS = int(data.get("INVOICE_DUE_DAYS", 7))
    COMPANY_NAME = data.get("COMPANY_NAME", "Super Agent Platform")
    COMPANY_ADDRESS = data.get("COMPANY_ADDRESS", "123 AI Street, Tech City, TC 12345")

    # Billing cycle scheduler
    SCHEDULER_ENABLED = bool(data.get("SCHEDULER_ENABLED", True))
    SCHEDULER_INTERVAL_SECONDS = data.get("SCHEDULER_INTERVAL_SECONDS", 3600)  # Hourly

    # Payment link worker
    PAYMENT_LINK_MAX_ATTEMPTS = int(data.get("PAYMENT_LINK_MAX_ATTEMPTS", 5))
    PAYMENT_LINK_RETRY_INTERVAL_SECONDS = data.get("PAYMENT_LINK_RETRY_INTERVAL_SECONDS", 300)

    # Payment gateway (Paymob)
    GATEWAY_BASE_URL = data.get("GATEWAY_BASE_URL", "https://accept.paymob.com/api")
    GATEWAY_API_KEY = data.get("GATEWAY_API_KEY", "")
    GATEWAY_INTEGRATION_ID = data.get("GATEWAY_INTEGRATION_ID", "")
    GATEWAY_HMAC_SECRET = data.get("GATEWAY_HMAC_SECRET", "")
    GATEWAY_IFRAME_ID = data.get("GATEWAY_IFRAME_ID", "")
    GATEWAY_TIMEOUT_SECONDS = float(data.get("GATEWAY_TIMEOUT_SECONDS", 10.0))
    GATEWAY_CIRCUIT_FAILURE_THRESHOLD = int(data.get("GATEWAY_CIRCUIT_FAILURE_THRESHOLD", 5))
    GATEWAY_CIRCUIT_RECOVERY_SECONDS = float(data.get("GATEWAY_CIRCUIT_RECOVERY_SECONDS", 60.0))
    GATEWAY_CIRCUIT_SUCCESS_THRESHOLD = int(data.get("GATEWAY_CIRCUIT_SUCCESS_THRESHOLD", 2))

    # External collaborators
    TENANT_SERVICE_URL = data.get("TENANT_SERVICE_URL", None)
    BILLING_ALERT_WEBHOOK = data.get("BILLING_ALERT_WEBHOOK", None)

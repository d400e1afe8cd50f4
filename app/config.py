from dataclasses import dataclass
from os import getenv
from dotenv import load_dotenv


@dataclass(frozen=True)
class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            load_dotenv()

            # Environment
            cls.environment = str(getenv('ENVIRONMENT', 'development')).lower()
            cls.production = cls.environment in ['production', 'prod']

            # Database
            cls.db_host = str(getenv('DB_HOST', 'localhost'))
            cls.db_port = int(getenv('DB_PORT', 5432))
            cls.db_user = str(getenv('DB_USER', 'postgres'))
            cls.db_password = str(getenv('DB_PASSWORD', ''))
            cls.db_name = str(getenv('DB_NAME', ''))
            # DATABASE_URL tiene prioridad sobre los parámetros individuales
            cls.database_url = str(
                getenv(
                    'DATABASE_URL',
                    f'postgresql+psycopg://{cls.db_user}:{cls.db_password}@{cls.db_host}:{cls.db_port}/{cls.db_name}',
                )
            )

            # General
            cls.local_timezone = str(getenv('LOCAL_TIMEZONE', 'America/Panama'))

            # PAC (Proveedor Autorizado Calificado) DGI
            cls.pac_base_url = str(getenv('PAC_BASE_URL', 'https://qa-apim.aludra.cloud/mdl18'))
            cls.pac_endpoint = str(getenv('PAC_ENDPOINT', '/feRecepFEDGI'))
            cls.pac_timeout = int(getenv('PAC_TIMEOUT', 60))
            cls.pac_success_codes = [
                code.strip() for code in str(getenv('PAC_SUCCESS_CODES', '0260,0000,200')).split(',') if code.strip()
            ]

            # Almacenamiento de artefactos (Supabase Storage)
            cls.storage_url = str(getenv('SUPABASE_URL', '')).rstrip('/')
            cls.storage_key = str(getenv('SUPABASE_SERVICE_KEY', ''))
            cls.storage_bucket = str(getenv('STORAGE_BUCKET', 'invoices'))
            cls.storage_timeout = int(getenv('STORAGE_TIMEOUT', 30))
            cls.artifact_max_attempts = int(getenv('ARTIFACT_MAX_ATTEMPTS', 3))
            cls.pdf_timeout = int(getenv('PDF_TIMEOUT', 30))

            # Correo transaccional (Resend)
            cls.resend_api_key = str(getenv('RESEND_API_KEY', ''))
            cls.email_from = str(getenv('EMAIL_FROM', 'facturas@zetterx.com'))
            cls.email_timeout = int(getenv('EMAIL_TIMEOUT', 30))
            cls.email_max_attempts = int(getenv('EMAIL_MAX_ATTEMPTS', 5))

            # Recuperación de flujos interrumpidos
            cls.workflow_stuck_minutes = int(getenv('WORKFLOW_STUCK_MINUTES', 15))

            # Logs
            cls.logs_dir = str(getenv('LOGS_DIR', 'logs'))

        return cls._instance


config = Config()

from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    APP_NAME: str = "Proxy Route Configurator"
    LISTEN_PORT: int = 8000
    DATA_DIR: str = Field(default="data")
    SQLITE_PATH: str | None = None  # if None, will be data/app.db
    ROOT_PATH: str = ""
    LOG_LEVEL: str = "INFO"
    DEBUG_MODE: bool = False

    # Shared secret the data plane sends when pulling its configuration
    CONFIG_PULL_TOKEN: str = ""
    # Secret required to change resource settings, sent as X-Admin-Token
    ADMIN_TOKEN: str = ""

    # Traefik static configuration this service has to agree with
    TRAEFIK_HTTP_ENTRYPOINT: str = "web"
    TRAEFIK_HTTPS_ENTRYPOINT: str = "websecure"
    TRAEFIK_CERT_RESOLVER: str = "letsencrypt"
    TRAEFIK_PREFER_WILDCARD_CERT: bool = False
    TRAEFIK_AUTH_MIDDLEWARE: str = "badger"
    TRAEFIK_ADDITIONAL_MIDDLEWARES: list[str] = Field(default_factory=list)
    TRAEFIK_PP_TRANSPORT_PREFIX: str = "pp-transport-v"
    TRAEFIK_STICKY_COOKIE_NAME: str = "p_sticky"
    TRAEFIK_SITE_TYPES: list[str] = Field(default_factory=lambda: ["newt", "wireguard", "local"])

    # Static backend that serves the maintenance page
    MAINTENANCE_HOST: str = "pangolin"
    MAINTENANCE_PORT: int = 8888

    def db_path(self) -> str:
        if self.SQLITE_PATH:
            return self.SQLITE_PATH
        d = Path(self.DATA_DIR)
        d.mkdir(parents=True, exist_ok=True)
        return str(d / "app.db")

settings = Settings()

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from dotenv import load_dotenv

load_dotenv()  # loads .env from project root if present


@dataclass(frozen=True)
class DbConfig:
    driver: str
    server: str
    database: str
    trusted: bool
    user: str | None = None
    password: str | None = None
    encrypt: bool = True
    trust_server_certificate: bool = True
    login_timeout: int = 5

    def masked(self) -> DbConfig:
        """Copy safe to print (password hidden)."""
        if self.password is None:
            return self
        return replace(self, password="***")


def _get_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _get_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return int(v.strip())
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {v!r}") from None


def get_db_config() -> DbConfig:
    driver = os.getenv("MSSQL_DRIVER", "ODBC Driver 18 for SQL Server")
    server = os.getenv("MSSQL_SERVER", "")
    database = os.getenv("MSSQL_DATABASE", "")
    trusted = _get_bool("MSSQL_TRUSTED", True)
    user = os.getenv("MSSQL_USER") or None
    password = os.getenv("MSSQL_PASSWORD") or None

    if not server:
        raise RuntimeError("Missing MSSQL_SERVER in environment/.env")
    if not database:
        raise RuntimeError("Missing MSSQL_DATABASE in environment/.env")
    if not trusted and not (user and password):
        raise RuntimeError("MSSQL_TRUSTED=false requires MSSQL_USER and MSSQL_PASSWORD in environment/.env")

    return DbConfig(
        driver=driver,
        server=server,
        database=database,
        trusted=trusted,
        user=user,
        password=password,
        encrypt=_get_bool("MSSQL_ENCRYPT", True),
        trust_server_certificate=_get_bool("MSSQL_TRUST_CERT", True),
        login_timeout=_get_int("MSSQL_LOGIN_TIMEOUT", 5),
    )


def connection_string(cfg: DbConfig) -> str:
    parts = [
        f"DRIVER={{{cfg.driver}}};",
        f"SERVER={cfg.server};",
        f"DATABASE={cfg.database};",
    ]
    if cfg.trusted:
        parts.append("Trusted_Connection=yes;")
    else:
        parts.append(f"UID={cfg.user};")
        parts.append(f"PWD={{{cfg.password}}};")
    parts.append(f"Encrypt={'yes' if cfg.encrypt else 'no'};")
    if cfg.trust_server_certificate:
        parts.append("TrustServerCertificate=yes;")  # dev-friendly TLS
    parts.append(f"LoginTimeout={cfg.login_timeout};")
    return "".join(parts)

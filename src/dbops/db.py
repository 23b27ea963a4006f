from __future__ import annotations

import pyodbc
from dbops.config import connection_string, get_db_config


def get_conn():
    cfg = get_db_config()
    return pyodbc.connect(connection_string(cfg), autocommit=False)

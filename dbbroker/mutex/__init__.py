"""Database-side named locks."""
from dbbroker.mutex.base import Mutex
from dbbroker.mutex.mysql import MySQLMutex
from dbbroker.mutex.oracle import LockMode, OracleMutex
from dbbroker.mutex.postgres import PostgresMutex

__all__ = ["Mutex", "MySQLMutex", "OracleMutex", "LockMode", "PostgresMutex"]

from contextlib import AbstractContextManager

from mysql.connector.errors import Error, InterfaceError, OperationalError


class UnitOfWork(AbstractContextManager):
   """Leases a pooled connection for one unit of work and always hands it back."""

   def __init__(self, pool, timeout=None):
      self.pool = pool
      self.timeout = timeout
      self.connection = None
      self._cursor = None

   def __enter__(self):
      self.connection = self.pool.acquire(self.timeout)
      try:
         self._cursor = self.connection.cursor()
      except BaseException:
         self.connection.mark_broken()
         self.pool.release(self.connection)
         raise
      return self

   @property
   def cursor(self):
      return self._cursor

   def commit(self):
      self.connection.commit()

   def rollback(self):
      self.connection.rollback()

   def __exit__(self, exc_type, exc, tb):
      try:
         if exc is None:
            try:
               self.commit()
            except (OperationalError, InterfaceError, OSError):
               self.connection.mark_broken()
               raise
         elif isinstance(exc, (OperationalError, InterfaceError)):
            # Connection state unknown, never reuse it
            self.connection.mark_broken()
         else:
            try:
               self.rollback()
            except (Error, OSError):
               self.connection.mark_broken()
      finally:
         if self._cursor:
            try:
               self._cursor.close()
            except (Error, OSError):
               self.connection.mark_broken()
         self.pool.release(self.connection)

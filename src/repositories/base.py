from infrastructure.unit_of_work import UnitOfWork


class BaseRepository:
   def __init__(self, pool, acquire_timeout=None):
      """Initialize repository with the connection pool it leases from.

      Args:
         pool: ConnectionPoolManager instance
         acquire_timeout: Seconds to wait for a connection (None: pool default)
      """
      self.pool = pool
      self.acquire_timeout = acquire_timeout

   def unit_of_work(self) -> UnitOfWork:
      return UnitOfWork(self.pool, timeout=self.acquire_timeout)

#
# SPDX-License-Identifier: AGPL-3.0-only
# Copyright (c) 2026 m2-eng
# Author: m2-eng
# Co-Author: GitHub Copilot
# License: GNU Affero General Public License v3.0 (AGPL-3.0-only)
# Purpose: Module for DatabaseCreator.
#
import logging
from pathlib import Path

from mysql.connector import Error

from auth.connection_pool_manager import ConnectionPoolManager


logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_FILE = Path(__file__).resolve().parent.parent / "db" / "auth_schema.sql"


def split_statements(sql_content: str) -> list[str]:
   """Split an SQL script into statements, dropping comment lines."""
   statements = []
   current_statement = []

   for line in sql_content.split('\n'):
      stripped = line.strip()
      if not stripped or stripped.startswith('--') or stripped.startswith('/*!'):
         continue

      current_statement.append(line)

      if stripped.endswith(';'):
         statement = '\n'.join(current_statement).strip().rstrip(';').strip()
         if statement:
            statements.append(statement)
         current_statement = []

   trailing = '\n'.join(current_statement).strip()
   if trailing:
      statements.append(trailing)
   return statements


class DatabaseCreator:
   """Create the session and user tables through the connection pool."""

   def __init__(self, pool: ConnectionPoolManager):
      self.pool = pool

   def create_schema(self, sql_file_path: str | Path = DEFAULT_SCHEMA_FILE) -> int:
      """
      Execute the schema script.

      Args:
         sql_file_path: Path to the SQL file.

      Returns:
         Number of executed statements.

      Raises:
         FileNotFoundError: SQL file does not exist.
         mysql.connector.Error: A statement failed.
      """
      sql_file = Path(sql_file_path)
      if not sql_file.exists():
         raise FileNotFoundError(f"SQL file not found at: {sql_file}")

      statements = split_statements(sql_file.read_text(encoding='utf-8'))
      logger.info("Executing %s SQL statements from %s", len(statements), sql_file)

      executed = 0
      with self.pool.connection() as conn:
         cursor = conn.cursor()
         try:
            for i, statement in enumerate(statements, 1):
               try:
                  cursor.execute(statement)
               except Error as e:
                  logger.error("Error executing statement %s: %s", i, e)
                  logger.error("Statement: %s...", statement[:100])
                  raise
               executed += 1
            conn.commit()
         finally:
            cursor.close()

      logger.info("Successfully executed %s SQL statements", executed)
      return executed

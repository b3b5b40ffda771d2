#!/usr/bin/env python3
"""
Auth service entry point.
Starts the web API and can create the database schema beforehand.
"""

import sys
import logging
import argparse

from config import ConfigError, load_app_config


if __name__ == "__main__":
   """Main function with argument parsing"""
   parser = argparse.ArgumentParser(
      description='Auth service (uses cfg/config.yaml and environment variables)',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
   Examples:
     python src/main.py
     python src/main.py --config cfg/config.yaml --host 0.0.0.0 --port 8080
     python src/main.py --init-schema --no-api

   Note: Database credentials and JWT_SECRET are read from the environment (.env).
      """
   )
   parser.add_argument('--config',
                       default=None,
                       help='Path to config file (default: cfg/config.yaml if present)')
   parser.add_argument('--host',
                       default='127.0.0.1',
                       help='API server host (default: 127.0.0.1)')
   parser.add_argument('--port',
                       type=int,
                       default=8000,
                       help='API server port (default: 8000)')
   parser.add_argument('--init-schema',
                       action="store_true",
                       help='Create the users and user_sessions tables before starting')
   parser.add_argument('--no-api',
                       action="store_true",
                       help='Do not start the API server')

   args = parser.parse_args()

   try:
      config = load_app_config(args.config)
   except (ConfigError, FileNotFoundError, RuntimeError) as e:
      print(f"Configuration error: {e}", file=sys.stderr)
      sys.exit(2)

   logging.basicConfig(
      level=getattr(logging, config.log_level, logging.INFO),
      format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
   )
   logger = logging.getLogger("main")

   if args.init_schema:
      if config.database is None:
         parser.error("--init-schema requires a configured database")

      from auth.connection_pool_manager import ConnectionPoolManager
      from DatabaseCreator import DatabaseCreator

      pool = ConnectionPoolManager(config.database)
      try:
         pool.open()
         executed = DatabaseCreator(pool).create_schema()
         logger.info("Schema ready (%s statements)", executed)
      except Exception as e:
         logger.error("Schema creation failed: %s", e)
         sys.exit(1)
      finally:
         pool.close()

   if args.no_api:
      sys.exit(0)

   import uvicorn
   from api.main import create_app

   logger.info("Starting auth service on http://%s:%s", args.host, args.port)
   logger.info("API Documentation: http://%s:%s/api/docs", args.host, args.port)

   uvicorn.run(
      create_app(config),
      host=args.host,
      port=args.port,
      log_level=config.log_level.lower()
   )

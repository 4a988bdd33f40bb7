"""初始化数据库"""
import argparse
import os
import sys

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import DatabaseManager
from database.seed import seed_defaults
from loguru import logger


def init_database(database_url=None):
    """初始化数据库、默认数据，并修复组合矩阵"""
    logger.info("Initializing database...")

    db = DatabaseManager(database_url)

    logger.info("Creating tables...")
    db.create_tables()

    logger.info("Inserting seed data...")
    created = seed_defaults(db)
    logger.info(f"Seeded {created['options']} options and {created['settings']} settings")

    repaired = db.repair_matrix()
    logger.info(f"Matrix check: {repaired}")

    db.close()
    logger.info("Database initialization completed!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="初始化打印店数据库")
    parser.add_argument("--db", default=None, help="数据库连接 URL")
    init_database(parser.parse_args().db)

#!/usr/bin/env python3
"""打印店订单系统 - Web 应用入口

启动订单受理与看板服务，提供：
1. 顾客提交订单（含附件上传）
2. 员工管理印刷选项、组合价格与订单状态
3. 看板实时推送（WebSocket）
4. 每日组合矩阵修复任务

使用方式：
    python app.py

    # 指定端口
    python app.py --port 3000

    # 指定数据库
    python app.py --db sqlite:///data/orders.db

    # 在终端打印所有实时事件
    python app.py --echo-events

环境变量（在 .env 文件中配置）：
    DATABASE_URL      数据库连接地址（默认 sqlite:///data/orders.db）
    WEB_PORT          Web 端口（默认 3000）
    WEB_USERNAME      登录用户名（默认 admin）
    WEB_PASSWORD      登录密码（默认 admin123）
    LOG_LEVEL         日志级别（默认 INFO）
"""
import argparse
import asyncio
import signal
import sys

from loguru import logger

from config.settings import settings


async def _cleanup(web, scheduler, db):
    """统一资源清理函数。

    确保 Web 服务器、调度器和数据库连接被正确关闭，释放端口和文件句柄。
    """
    logger.info("正在清理资源...")

    # 1. 停止 Web 服务器（释放端口）
    if web is not None:
        try:
            await web.shutdown()
        except Exception as e:
            logger.warning(f"停止 Web 服务器时出错: {e}")

    # 2. 停止定时任务
    if scheduler is not None:
        try:
            scheduler.stop()
        except Exception as e:
            logger.warning(f"停止调度器时出错: {e}")

    # 3. 关闭数据库连接（释放连接池）
    if db is not None:
        try:
            db.close()
        except Exception as e:
            logger.warning(f"关闭数据库连接时出错: {e}")

    logger.info("服务已停止")


async def main():
    parser = argparse.ArgumentParser(description="打印店订单系统")
    parser.add_argument("--host", default=settings.web_host,
                        help=f"监听地址 (默认: {settings.web_host})")
    parser.add_argument("--port", type=int, default=settings.web_port,
                        help=f"监听端口 (默认: {settings.web_port})")
    parser.add_argument("--db", default=None,
                        help="数据库连接 URL")
    parser.add_argument("--log-level", default=settings.log_level,
                        help=f"日志级别 (默认: {settings.log_level})")
    parser.add_argument("--echo-events", action="store_true",
                        help="在终端打印所有实时事件")
    parser.add_argument("--no-seed", action="store_true",
                        help="不写入默认选项和设置")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper())

    # 用于 finally 清理的引用
    web = None
    scheduler = None
    db = None

    try:
        # 初始化数据库
        from database import DatabaseManager
        from database.seed import seed_defaults
        db = DatabaseManager(args.db)
        db.create_tables()
        logger.info(f"数据库已连接: {db.database_url}")
        if not args.no_seed:
            seed_defaults(db)

        # 业务服务与事件广播
        from business.service import PrintShopService
        from interface import EventBroadcaster, TerminalObserver
        broadcaster = EventBroadcaster(loop=asyncio.get_running_loop())
        if args.echo_events:
            broadcaster.register(TerminalObserver())
        service = PrintShopService(db, broadcaster)

        # 每日矩阵修复
        if settings.matrix_repair_enabled:
            from business.scheduler import Scheduler
            scheduler = Scheduler(loop=asyncio.get_running_loop())
            scheduler.add_matrix_repair(service.scheduled_repair)
            scheduler.start()

        # 启动 Web 服务
        from interface.web import WebServer
        web = WebServer(service, host=args.host, port=args.port)
        await web.startup()

        print()
        print("=" * 60)
        print("  打印店订单系统已启动!")
        print(f"  访问地址: http://localhost:{args.port}")
        print(f"  数据库: {db.database_url}")
        print(f"  矩阵修复: {settings.matrix_repair_time if scheduler else '未启用'}")
        print("=" * 60)
        print("  按 Ctrl+C 停止服务")
        print()

        # 设置信号处理
        loop = asyncio.get_running_loop()
        shutdown_event = asyncio.Event()
        _shutdown_requested = False

        def signal_handler(signum):
            """处理退出信号"""
            nonlocal _shutdown_requested
            if _shutdown_requested:
                logger.warning("再次收到退出信号，强制退出...")
                for task in asyncio.all_tasks(loop):
                    task.cancel()
                return
            _shutdown_requested = True
            logger.info(f"收到信号 {signum}，正在关闭服务...")
            shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler, sig)

        # 保持运行，直到收到退出信号
        await shutdown_event.wait()

    except asyncio.CancelledError:
        logger.info("任务被取消，正在清理...")
    except KeyboardInterrupt:
        logger.info("收到键盘中断信号")
    finally:
        await _cleanup(web, scheduler, db)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        print("\n已停止。")

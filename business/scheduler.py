"""定时任务调度器 - 通用的任务调度框架

具体的任务逻辑（如组合矩阵的每日修复）由 business/service.py 提供，
通过回调函数注入。
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from typing import Callable, List, Optional, Tuple
from loguru import logger
from config.settings import settings
import asyncio


def parse_daily_time(value: str) -> Tuple[int, int]:
    """解析 ``HH:MM`` 格式的时间

    Raises:
        ValueError: 格式无效或超出范围
    """
    try:
        hour_text, minute_text = value.strip().split(":")
        hour, minute = int(hour_text), int(minute_text)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time (expected HH:MM): {value!r}") from None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time (expected HH:MM): {value!r}")
    return hour, minute


class Scheduler:
    """定时任务调度器

    通用的任务调度框架，不包含具体的业务逻辑
    业务逻辑通过回调函数注入，保持调度层的独立性
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """初始化调度器

        Args:
            loop: 运行任务的事件循环，默认使用当前事件循环（没有则新建）
        """
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = asyncio.new_event_loop()
                asyncio.set_event_loop(loop)
        self.scheduler = AsyncIOScheduler(event_loop=loop)

    def add_daily_task(
        self,
        task_func: Callable,
        hour: int = 3,
        minute: int = 0,
        task_id: str = 'daily_task',
        task_name: str = '每日任务'
    ):
        """添加每日定时任务

        Args:
            task_func: 任务函数（async 函数）
            hour: 小时 (0-23)
            minute: 分钟 (0-59)
            task_id: 任务ID
            task_name: 任务名称
        """
        self.scheduler.add_job(
            task_func,
            trigger=CronTrigger(hour=hour, minute=minute),
            id=task_id,
            name=task_name,
            replace_existing=True
        )
        logger.info(f"已添加每日任务 '{task_name}'，执行时间 {hour:02d}:{minute:02d}")

    def add_matrix_repair(self, task_func: Callable, at: Optional[str] = None):
        """添加每日组合矩阵修复任务

        Args:
            task_func: 修复任务（通常为 PrintShopService.scheduled_repair）
            at: 执行时间 ``HH:MM``，默认 settings.matrix_repair_time
        """
        hour, minute = parse_daily_time(at or settings.matrix_repair_time)
        self.add_daily_task(
            task_func, hour=hour, minute=minute,
            task_id='matrix_repair', task_name='组合矩阵修复',
        )

    def list_jobs(self) -> List[str]:
        """列出所有任务ID"""
        return [job.id for job in self.scheduler.get_jobs()]

    def start(self):
        """启动调度器"""
        self.scheduler.start()
        logger.info("调度器已启动")

    def stop(self):
        """停止调度器"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("调度器已停止")

    def remove_job(self, job_id: str):
        """移除任务

        Args:
            job_id: 任务ID
        """
        try:
            self.scheduler.remove_job(job_id)
            logger.info(f"任务 {job_id} 已移除")
        except Exception as e:
            logger.warning(f"移除任务 {job_id} 失败: {e}")

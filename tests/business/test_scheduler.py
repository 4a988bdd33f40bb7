"""测试定时任务调度器"""
import asyncio

import pytest

from business.scheduler import Scheduler, parse_daily_time


async def _noop():
    pass


@pytest.fixture
def scheduler():
    loop = asyncio.new_event_loop()
    try:
        yield Scheduler(loop=loop)
    finally:
        loop.close()


class TestParseDailyTime:
    """时间解析测试"""

    @pytest.mark.parametrize("text, expected", [
        ("03:00", (3, 0)),
        ("23:59", (23, 59)),
        (" 7:05 ", (7, 5)),
    ])
    def test_valid(self, text, expected):
        assert parse_daily_time(text) == expected

    @pytest.mark.parametrize("text", ["24:00", "12:60", "noon", "12", "1:2:3", ""])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_daily_time(text)


class TestScheduler:
    """调度器测试"""

    def test_add_daily_task(self, scheduler):
        scheduler.add_daily_task(_noop, hour=4, minute=15, task_id="cleanup")
        assert scheduler.list_jobs() == ["cleanup"]

    def test_matrix_repair_job(self, scheduler):
        scheduler.add_matrix_repair(_noop, at="03:30")

        job = scheduler.scheduler.get_job("matrix_repair")
        assert job.name == "组合矩阵修复"
        trigger = str(job.trigger)
        assert "hour='3'" in trigger
        assert "minute='30'" in trigger

    def test_matrix_repair_invalid_time(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.add_matrix_repair(_noop, at="25:00")

    def test_remove_job(self, scheduler):
        scheduler.add_daily_task(_noop, task_id="cleanup")
        scheduler.remove_job("cleanup")
        assert scheduler.list_jobs() == []
        # 不存在的任务只记录警告
        scheduler.remove_job("cleanup")

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        scheduler = Scheduler()
        scheduler.add_matrix_repair(_noop, at="03:00")
        scheduler.start()
        assert scheduler.scheduler.running
        assert scheduler.list_jobs() == ["matrix_repair"]

        scheduler.stop()
        # 未运行时再次停止不报错
        scheduler.stop()

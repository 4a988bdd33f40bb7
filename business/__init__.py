"""业务模块 - 数据操作与事件发布的编排、定时任务"""

"""Web 服务 - 订单受理与看板的 HTTP/WebSocket 接口

基于 FastAPI 提供全部 ``/api`` 路由和 ``/ws`` 实时推送：
1. 印刷选项与组合矩阵（价格、可用状态）
2. 订单的提交、看板查询、员工编辑与导出
3. 显示/业务设置
4. 订单附件上传
5. 员工登录认证

使用方式：
    ```python
    server = WebServer(service, port=3000)
    await server.startup()
    # 访问 http://localhost:3000/health
    ```
"""
import asyncio
import threading
import uuid
from typing import Optional

from loguru import logger

from business.service import PrintShopService
from config.settings import settings
from database.errors import PrintShopError, StorageError
from interface.web.auth import TokenAuthenticator
from interface.web.exports import orders_to_csv
from interface.web.observer import WebSocketObserver
from storage.uploads import UploadStore


class WebServer:
    """Web 服务

    路由：
    - POST   /api/auth/login                  → 员工登录
    - GET    /api/options                     → 三个目录的全部选项
    - GET    /api/options/combinations        → 组合矩阵
    - POST   /api/options/combinations/repair → 修复矩阵（需登录）
    - PUT    /api/options/combinations/{id}   → 更新组合价格/可用状态
    - POST   /api/options/{catalog}           → 新增选项（需登录）
    - PUT    /api/options/{catalog}/{id}      → 更新选项（需登录）
    - DELETE /api/options/{catalog}/{id}      → 删除选项（需登录）
    - GET    /api/orders                      → 看板订单列表
    - POST   /api/orders                      → 提交订单
    - GET    /api/orders/stats/summary        → 按状态统计
    - GET    /api/orders/export/csv           → 导出 CSV（需登录）
    - GET    /api/orders/{id}                 → 单个订单
    - PATCH  /api/orders/{id}                 → 局部更新（需登录）
    - PUT    /api/orders/{id}                 → 整体更新（需登录）
    - DELETE /api/orders/{id}                 → 删除订单（需登录）
    - GET    /api/settings[/{key}]            → 读取设置
    - PUT    /api/settings[/{key}]            → 更新设置（需登录）
    - POST   /api/upload[/admin]              → 上传附件
    - GET    /api/upload/{filename}           → 附件信息
    - DELETE /api/upload/{filename}           → 删除附件（需登录）
    - WS     /ws                              → 实时事件
    - GET    /health                          → 健康检查

    访问数据库的路由是普通函数，由 FastAPI 在线程池中执行，
    其中发布的事件经由绑定的服务器循环推送给 WebSocket 观察者。
    """

    def __init__(
        self,
        service: PrintShopService,
        uploads: Optional[UploadStore] = None,
        authenticator: Optional[TokenAuthenticator] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        protect_combination_updates: Optional[bool] = None,
    ):
        self.service = service
        self.uploads = uploads or UploadStore()
        self.auth = authenticator or TokenAuthenticator()
        self.host = host or settings.web_host
        self.port = port or settings.web_port
        self.protect_combination_updates = (
            settings.protect_combination_updates if protect_combination_updates is None
            else protect_combination_updates
        )
        self.running = False
        self.app = self.create_app()
        self._server_thread: Optional[threading.Thread] = None
        self._server = None  # uvicorn.Server 实例
        self._server_loop = None  # 服务器事件循环

    @property
    def broadcaster(self):
        return self.service.broadcaster

    def create_app(self):
        """创建 FastAPI 应用"""
        from fastapi import Depends, FastAPI, File, Request, UploadFile, WebSocket, WebSocketDisconnect
        from fastapi.responses import JSONResponse, Response

        app = FastAPI(
            title="打印店订单系统",
            description="订单受理、组合定价与实时看板",
            version="1.0.0",
        )
        service = self.service

        @app.exception_handler(PrintShopError)
        async def handle_print_shop_error(request: Request, exc: PrintShopError):
            if isinstance(exc, StorageError):
                logger.error(f"{request.method} {request.url.path} 存储失败: {exc.__cause__ or exc}")
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

        def require_staff(request: Request):
            """从请求头中验证 token"""
            self.auth.require(request.headers.get("Authorization"))
            return True

        def guard_combination_updates(request: Request):
            if self.protect_combination_updates:
                self.auth.require(request.headers.get("Authorization"))
            return True

        # ==================== 认证 API ====================

        @app.post("/api/auth/login")
        async def login(data: dict):
            token = self.auth.login(data.get("username", ""), data.get("password", ""))
            return {"success": True, "token": token}

        # ==================== 印刷选项 API ====================

        @app.get("/api/options")
        def list_options():
            return service.list_options()

        @app.get("/api/options/combinations")
        def list_combinations():
            return service.list_combinations()

        @app.post("/api/options/combinations/repair")
        def repair_matrix(_=Depends(require_staff)):
            return service.repair_matrix()

        @app.put("/api/options/combinations/{combination_id}")
        def update_combination(combination_id: int, data: dict,
                                     _=Depends(guard_combination_updates)):
            return service.update_combination(combination_id, data)

        @app.post("/api/options/{catalog}")
        def add_option(catalog: str, data: dict, _=Depends(require_staff)):
            return service.add_option(catalog, data)

        @app.put("/api/options/{catalog}/{option_id}")
        def update_option(catalog: str, option_id: int, data: dict,
                                _=Depends(require_staff)):
            return service.update_option(catalog, option_id, data)

        @app.delete("/api/options/{catalog}/{option_id}")
        def delete_option(catalog: str, option_id: int, _=Depends(require_staff)):
            return service.delete_option(catalog, option_id)

        # ==================== 订单 API ====================

        @app.get("/api/orders")
        def list_orders(status: Optional[str] = None,
                              show_picked_up: Optional[str] = None):
            return service.list_orders(status=status, show_completed=show_picked_up == "true")

        @app.post("/api/orders", status_code=201)
        def create_order(data: dict):
            return service.create_order(data)

        @app.get("/api/orders/stats/summary")
        def order_stats():
            return service.order_stats()

        @app.get("/api/orders/export/csv")
        def export_orders(_=Depends(require_staff)):
            return Response(
                content=orders_to_csv(service.export_orders()),
                media_type="text/csv",
                headers={"Content-Disposition": 'attachment; filename="orders.csv"'},
            )

        @app.get("/api/orders/{order_id}")
        def get_order(order_id: int):
            return service.get_order(order_id)

        @app.patch("/api/orders/{order_id}")
        def patch_order(order_id: int, data: dict, _=Depends(require_staff)):
            return service.patch_order(order_id, data)

        @app.put("/api/orders/{order_id}")
        def replace_order(order_id: int, data: dict, _=Depends(require_staff)):
            return service.replace_order(order_id, data)

        @app.delete("/api/orders/{order_id}")
        def delete_order(order_id: int, _=Depends(require_staff)):
            return service.delete_order(order_id)

        # ==================== 设置 API ====================

        @app.get("/api/settings")
        def get_settings():
            return service.get_settings()

        @app.put("/api/settings")
        def update_settings(data: dict, _=Depends(require_staff)):
            return service.update_settings(data)

        @app.get("/api/settings/{key}")
        def get_setting(key: str):
            return service.get_setting(key)

        @app.put("/api/settings/{key}")
        def update_setting(key: str, data: dict, _=Depends(require_staff)):
            return service.update_setting(key, data.get("value"))

        # ==================== 附件 API ====================

        async def store_upload(file: UploadFile):
            data = await file.read()
            info = self.uploads.store(data, file.filename or "", file.content_type or "")
            return {"message": "File uploaded successfully", "file": info}

        @app.post("/api/upload")
        async def upload_file(file: UploadFile = File(...)):
            return await store_upload(file)

        @app.post("/api/upload/admin")
        async def upload_file_admin(file: UploadFile = File(...), _=Depends(require_staff)):
            return await store_upload(file)

        @app.get("/api/upload/{filename}")
        def upload_info(filename: str):
            return self.uploads.info(filename)

        @app.delete("/api/upload/{filename}")
        def delete_upload(filename: str, _=Depends(require_staff)):
            self.uploads.delete(filename)
            return {"message": "File deleted successfully"}

        # ==================== 实时推送 ====================

        @app.websocket("/ws")
        async def events(websocket: WebSocket):
            await websocket.accept()
            self.broadcaster.bind_loop(asyncio.get_running_loop())
            observer = WebSocketObserver(f"ws-{uuid.uuid4().hex[:8]}", websocket)
            self.broadcaster.register(observer)
            logger.info(f"看板已连接: {observer.name}")
            try:
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                pass
            finally:
                if self.broadcaster.get_observer(observer.name) is observer:
                    self.broadcaster.unregister(observer.name)
                logger.info(f"看板已断开: {observer.name}")

        # ==================== 健康检查 ====================

        @app.get("/health")
        async def health_check():
            return {
                "status": "ok",
                "running": self.running,
                "observers": len(self.broadcaster.list_observers()),
            }

        return app

    async def startup(self):
        """在独立线程中启动 uvicorn 服务器"""
        import uvicorn

        self.running = True

        def run_server():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._server_loop = loop
            self.broadcaster.bind_loop(loop)

            config = uvicorn.Config(
                self.app,
                host=self.host,
                port=self.port,
                log_level="warning",
                loop="asyncio",
            )
            self._server = uvicorn.Server(config)
            # 信号处理由 app.py 统一管理
            self._server.install_signal_handlers = lambda: None

            try:
                loop.run_until_complete(self._server.serve())
            except Exception as e:
                logger.error(f"服务器运行出错: {e}")
            finally:
                pending = asyncio.all_tasks(loop)
                for task in pending:
                    task.cancel()
                if pending:
                    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
                loop.run_until_complete(loop.shutdown_asyncgens())
                loop.close()

        self._server_thread = threading.Thread(target=run_server, daemon=True)
        self._server_thread.start()

        # 等待服务器启动
        waited = 0.0
        while self._server is None and waited < 5:
            await asyncio.sleep(0.1)
            waited += 0.1

        logger.info(f"Web 服务已启动: http://{self.host}:{self.port}")

    async def shutdown(self):
        """停止 Web 服务器"""
        self.running = False
        if self._server is None:
            return

        logger.info("正在停止 Web 服务器...")
        self._server.should_exit = True
        if self._server_thread and self._server_thread.is_alive():
            await asyncio.to_thread(self._server_thread.join, 3.0)
        if self._server_thread and self._server_thread.is_alive():
            logger.warning("服务器未在 3 秒内优雅停止，强制退出...")
            self._server.force_exit = True
            await asyncio.to_thread(self._server_thread.join, 2.0)

        self.broadcaster.bind_loop(None)
        self._server = None
        self._server_loop = None
        self._server_thread = None
        logger.info("Web 服务已停止")

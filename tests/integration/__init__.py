"""
集成测试（integration tests）

说明：
- 该目录下的测试会真实落盘到临时目录，并向本地临时 HTTP server 发真实请求。
- 不依赖外网；桌面通知与外部刷新信号在这里一律关闭。
"""

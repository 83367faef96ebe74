"""
NetSentry 路由模块包 (NetSentry Router Module Package)

- devices.py: 设备列表、最新指标、历史指标
- alerts.py: 告警查询
- ws.py: WebSocket 实时推送（仪表盘汇总 + 按设备订阅详情）
"""

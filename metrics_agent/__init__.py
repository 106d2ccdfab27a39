"""
Metrics Agent - 主机 CPU / 内存指标上报代理

负责：
- 每 0.9s 采集一次 CPU、内存使用率
- 按上报周期（默认 60s）聚合采样（中位数 + 峰值）
- 将聚合结果发送到 CloudWatch 或控制台
- 收到 SIGINT / SIGTERM 时先做最后一次聚合再退出
"""

__version__ = "1.0.0"

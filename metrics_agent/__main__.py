"""
Metrics Agent 主程序入口

使用方式:
    python -m metrics_agent --namespace MyApp --service-name api
    或
    metrics-agent -n MyApp -s api --period 60 --dryrun
"""

import argparse
import asyncio
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from metrics_agent import __version__
from metrics_agent.app import main_runner
from metrics_agent.config import AgentConfig, LoggingConfig, load_config
from metrics_agent.publishers import PublisherInitError

logger = logging.getLogger("metrics_agent")


def setup_logging(config: LoggingConfig):
    """配置日志"""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    level = getattr(logging, config.level)

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # 如果配置了文件日志
    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="metrics-agent",
        description="Publish host CPU and memory utilization to CloudWatch",
    )
    parser.add_argument("-n", "--namespace", help="Metric namespace")
    parser.add_argument("-s", "--service-name", help="Metric dimension value for ServiceName")
    parser.add_argument("-p", "--period", type=int, default=None,
                        help="Metric period in seconds (default: 60)")
    parser.add_argument("-d", "--dryrun", action="store_true",
                        help="Print metrics to console instead of sending to CloudWatch")
    parser.add_argument("-c", "--config", default=None,
                        help="Config file (default: $METRICS_AGENT_CONFIG or /etc/metrics-agent/config.yaml)")
    parser.add_argument("--log-level", default=None,
                        help="Log level (default: $METRICS_AGENT_LOG_LEVEL or INFO)")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> AgentConfig:
    """合并配置文件和命令行参数（命令行优先）"""
    return load_config(
        args.config,
        overrides={
            "cloudwatch": {
                "namespace": args.namespace,
                "service_name": args.service_name,
            },
            "publish": {"period": args.period},
            "logging": {"level": args.log_level or os.getenv("METRICS_AGENT_LOG_LEVEL")},
        },
    )


def main(argv: Optional[List[str]] = None) -> int:
    """主程序入口"""
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except (FileNotFoundError, ValidationError, ValueError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.logging)
    logger.info(f"Metrics Agent v{__version__}")
    logger.info(
        f"Namespace: {config.cloudwatch.namespace}, "
        f"ServiceName: {config.cloudwatch.service_name}, "
        f"period: {config.publish.period}s, dryrun: {args.dryrun}"
    )

    try:
        clean = asyncio.run(main_runner(config, dryrun=args.dryrun))
    except PublisherInitError as e:
        logger.error(f"Cannot initialize publisher: {e}")
        return 1

    if not clean:
        logger.error("Shutdown finished with errors")
        return 1

    logger.info("Done")
    return 0


if __name__ == "__main__":
    sys.exit(main())

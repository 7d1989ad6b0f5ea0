"""Build operation instances from configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pulse_cli.operations.base import Operation
from pulse_cli.operations.command import CommandOperation
from pulse_cli.operations.disk_usage import DiskUsageOperation
from pulse_cli.operations.news import NewsOperation
from pulse_cli.operations.tweets import TweetsOperation

if TYPE_CHECKING:
    from pulse_cli.config import PulseConfig

logger = logging.getLogger(__name__)


def build_operations(config: PulseConfig) -> dict[str, Operation]:
    """Create every operation the configuration provides, keyed by name."""
    operations: dict[str, Operation] = {}

    if config.system_monitor.filesystems:
        operation = DiskUsageOperation(
            {fs.mount: fs.max_usage for fs in config.system_monitor.filesystems}
        )
        operations[operation.name] = operation

    if config.news.api_key:
        operation = NewsOperation(
            api_key=config.news.api_key,
            viewed_period=config.news.viewed_period,
            emailed_period=config.news.emailed_period,
            shared_period=config.news.shared_period,
            shared_mediums=config.news.shared_mediums,
            max_articles=config.news.max_articles,
        )
        operations[operation.name] = operation

    if config.twitter.bearer_token and config.twitter.terms:
        operation = TweetsOperation(
            bearer_token=config.twitter.bearer_token,
            groups={group.group_name: group.terms for group in config.twitter.terms},
            max_tweets=config.twitter.max_tweets,
            language=config.twitter.language,
        )
        operations[operation.name] = operation

    for command in config.commands:
        if command.id in operations:
            logger.warning(f"Command {command.id} shadows a built-in operation")
        operations[command.id] = CommandOperation(command.id, command.command, event_name=command.event)

    return operations

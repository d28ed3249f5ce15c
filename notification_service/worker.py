"""Worker entrypoint: wire the long-lived dependencies and run the pool.

The Redis connection and SMTP transport are created once here and handed to
the dispatcher and pool. Outside production the health app is served on the
same event loop.
"""
from __future__ import annotations

import asyncio
import logging
import signal

import redis.asyncio as aioredis
import uvicorn

from notification_service.core.logging import setup_logging
from notification_service.core.settings import Settings, get_settings
from notification_service.jobs.queue import RedisJobQueue
from notification_service.jobs.worker_pool import JobWorkerPool
from notification_service.notification.dispatcher import NotificationDispatcher
from notification_service.notification.email_sender import SmtpMailTransport
from notification_service.reports.render_engine import RenderEngine
from notification_service.reports.renderer import ReportRenderer

logger = logging.getLogger(__name__)


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    if settings.is_production and not (settings.smtp_user and settings.smtp_password):
        logger.warning("EMAIL_USER and EMAIL_PASS are not set; SMTP login will be skipped.")

    transport = SmtpMailTransport(
        settings.smtp_host,
        settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        timeout_s=settings.smtp_timeout_seconds,
    )
    engine = RenderEngine(
        production=settings.is_production,
        executable_override=settings.browser_executable_path,
    )
    renderer = ReportRenderer(
        engine,
        logo_url=settings.report_logo_url,
        launch_attempts=settings.browser_launch_attempts,
    )
    return NotificationDispatcher(
        transport,
        renderer,
        sender_address=settings.sender_address,
        sender_name=settings.mail_from_name,
        academics_sender_name=settings.academics_from_name,
    )


def build_pool(settings: Settings, redis) -> JobWorkerPool:
    queue = RedisJobQueue(
        redis,
        settings.queue_name,
        prefix=settings.queue_prefix,
        max_attempts=settings.queue_max_attempts,
        backoff_s=settings.queue_backoff_seconds,
        stall_timeout_s=settings.queue_stall_timeout_seconds,
    )
    return JobWorkerPool(
        queue,
        build_dispatcher(settings),
        concurrency=settings.worker_concurrency,
    )


async def run_worker(settings: Settings) -> None:
    redis = aioredis.from_url(settings.redis_url)
    pool = build_pool(settings, redis)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, pool.stop)
        except NotImplementedError:  # Windows
            pass

    server: uvicorn.Server | None = None
    tasks = [asyncio.create_task(pool.run())]
    if not settings.is_production:
        config = uvicorn.Config(
            "notification_service.main:app",
            host=settings.health_host,
            port=settings.health_port,
            log_config=None,
        )
        # uvicorn re-raises captured SIGINT/SIGTERM on exit, which reaches pool.stop
        server = uvicorn.Server(config)
        tasks.append(asyncio.create_task(server.serve()))
        logger.info("Health server starting on %s:%d", settings.health_host, settings.health_port)

    logger.info("Notification worker started on queue %r", settings.queue_name)
    try:
        await tasks[0]
    finally:
        if server is not None:
            server.should_exit = True
        await asyncio.gather(*tasks[1:], return_exceptions=True)
        await redis.aclose()


def main() -> None:
    setup_logging()
    asyncio.run(run_worker(get_settings()))


if __name__ == "__main__":
    main()

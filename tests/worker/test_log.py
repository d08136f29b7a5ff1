"""Tests for per-job log tagging."""

from __future__ import annotations

import asyncio

from loguru import logger

from coding_worker.worker.log import job_context


async def test_job_context_tags_records_and_spawned_tasks() -> None:
    seen: list[tuple[str, str | None]] = []
    handler_id = logger.add(lambda m: seen.append((m.record["message"], m.record["extra"].get("job_id"))))

    async def child() -> None:
        logger.info("child")

    try:
        with job_context("job-1"):
            logger.info("inside")
            await asyncio.create_task(child())
        logger.info("outside")
    finally:
        logger.remove(handler_id)

    tagged = dict(seen)
    assert tagged["inside"] == "job-1"
    assert tagged["child"] == "job-1"
    assert tagged["outside"] != "job-1"

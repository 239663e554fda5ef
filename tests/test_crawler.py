"""Tests for the file and directory crawl passes."""

import asyncio
import os
import tempfile
from pathlib import Path

import pytest

from asyncnuke import crawler as crawler_module
from asyncnuke.channels import PathChannel
from asyncnuke.counters import Counters
from asyncnuke.crawler import CrawlError, Crawler, DirectoryMode, FileMode


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_tree(temp_dir):
    """
    t/a        file, 10 bytes
    t/b/       empty directory
    t/c/d      file, 20 bytes
    """
    (temp_dir / "a").write_bytes(b"x" * 10)
    (temp_dir / "b").mkdir()
    (temp_dir / "c").mkdir()
    (temp_dir / "c" / "d").write_bytes(b"y" * 20)
    return temp_dir


async def crawl(patterns, mode, counters=None, capacity=1000):
    """Run one crawl pass into a large channel and return what was queued, in order."""
    counters = counters or Counters()
    channel = PathChannel(capacity)
    try:
        await Crawler(counters).run([str(p) for p in patterns], channel, mode)
    finally:
        await channel.close()
    queued = [path async for path in channel]
    return counters, queued


@pytest.mark.asyncio
async def test_file_mode_queues_only_top_level_files(sample_tree):
    """Directories matched by the pattern are skipped, nested files are never queued."""
    counters, queued = await crawl([f"{sample_tree}/*"], FileMode())

    assert queued == [sample_tree / "a"]
    assert counters.objects_found.value == 1
    assert counters.directories_found.value == 0
    # a, b and c are inspected once each; nothing below b or c is visited
    assert counters.crawl_ops.value == 3
    assert counters.stat_ops.value == 3


@pytest.mark.asyncio
async def test_directory_mode_queues_directories_only(sample_tree):
    counters, queued = await crawl([f"{sample_tree}/*"], DirectoryMode())

    assert set(queued) == {sample_tree / "b", sample_tree / "c"}
    assert counters.directories_found.value == 2
    assert counters.objects_found.value == 0
    # a, b, c and the nested d are all inspected
    assert counters.crawl_ops.value == 4
    assert counters.stat_ops.value == 4


@pytest.mark.asyncio
async def test_directory_mode_is_post_order(temp_dir):
    """Every directory is queued after all directories below it."""
    top = temp_dir / "top"
    (top / "y" / "z").mkdir(parents=True)
    (top / "y" / "z" / "f.txt").write_text("f")
    (top / "w").mkdir()
    (top / "w" / "g.txt").write_text("g")

    counters, queued = await crawl([top], DirectoryMode())

    assert len(queued) == 4
    assert queued[-1] == top
    assert queued.index(top / "y" / "z") < queued.index(top / "y")
    assert queued.index(top / "y") < queued.index(top)
    assert queued.index(top / "w") < queued.index(top)
    assert counters.directories_found.value == 4


@pytest.mark.asyncio
async def test_file_mode_ignores_directory_pattern(sample_tree):
    """A pattern naming a directory yields nothing in the file pass."""
    counters, queued = await crawl([sample_tree / "c"], FileMode())

    assert queued == []
    assert counters.crawl_ops.value == 1
    assert counters.objects_found.value == 0


@pytest.mark.asyncio
async def test_directory_mode_ignores_file_pattern(sample_tree):
    counters, queued = await crawl([sample_tree / "a"], DirectoryMode())

    assert queued == []
    assert counters.stat_ops.value == 1
    assert counters.directories_found.value == 0


@pytest.mark.asyncio
async def test_symlinks_are_not_followed(sample_tree):
    """A symlink to a directory is a file-pass object and is never descended into."""
    (sample_tree / "link").symlink_to(sample_tree / "c")

    counters, queued = await crawl([f"{sample_tree}/*"], FileMode())
    assert set(queued) == {sample_tree / "a", sample_tree / "link"}
    assert counters.objects_found.value == 2

    counters, queued = await crawl([f"{sample_tree}/*"], DirectoryMode())
    assert set(queued) == {sample_tree / "b", sample_tree / "c"}
    assert counters.directories_found.value == 2
    # a, b, c, c/d and the link itself
    assert counters.crawl_ops.value == 5


@pytest.mark.asyncio
async def test_broken_symlink_is_queued(temp_dir):
    (temp_dir / "broken").symlink_to(temp_dir / "missing")

    counters, queued = await crawl([f"{temp_dir}/*"], FileMode())

    assert queued == [temp_dir / "broken"]
    assert counters.objects_found.value == 1


@pytest.mark.asyncio
async def test_wildcard_matches_hidden_entries(temp_dir):
    (temp_dir / ".hidden").write_text("h")
    (temp_dir / "visible").write_text("v")

    counters, queued = await crawl([f"{temp_dir}/*"], FileMode())

    assert set(queued) == {temp_dir / ".hidden", temp_dir / "visible"}


@pytest.mark.asyncio
async def test_question_mark_wildcard(temp_dir):
    for name in ("log1", "log2", "log10"):
        (temp_dir / name).write_text(name)

    counters, queued = await crawl([f"{temp_dir}/log?"], FileMode())

    assert queued == [temp_dir / "log1", temp_dir / "log2"]


@pytest.mark.asyncio
async def test_pattern_matching_nothing_is_not_an_error(temp_dir):
    counters, queued = await crawl([f"{temp_dir}/nothing-here-*"], DirectoryMode())

    assert queued == []
    assert counters.crawl_ops.value == 0


@pytest.mark.asyncio
async def test_listing_failure_aborts_only_that_subtree(temp_dir, monkeypatch):
    """A failing subtree is reported after sibling subtrees finished normally."""
    (temp_dir / "locked" / "inner").mkdir(parents=True)
    (temp_dir / "open" / "inner").mkdir(parents=True)

    original_scandir = crawler_module.async_scandir

    async def flaky_scandir(path, executor=None):
        if Path(path).name == "locked":
            raise PermissionError(13, "Permission denied", str(path))
        return await original_scandir(path, executor)

    monkeypatch.setattr(crawler_module, "async_scandir", flaky_scandir)

    counters = Counters()
    channel = PathChannel(100)
    with pytest.raises(CrawlError) as exc_info:
        await Crawler(counters).run([f"{temp_dir}/*"], channel, DirectoryMode())
    await channel.close()
    queued = [path async for path in channel]

    assert exc_info.value.mode_name == "directory"
    assert exc_info.value.failed_paths == [str(temp_dir / "locked")]
    assert isinstance(exc_info.value.errors[0][1], PermissionError)
    assert queued == [temp_dir / "open" / "inner", temp_dir / "open"]


@pytest.mark.asyncio
async def test_pattern_expansion_failure_does_not_stop_other_patterns(temp_dir, monkeypatch):
    (temp_dir / "keep.txt").write_text("k")
    original_glob = crawler_module.async_glob

    async def failing_glob(pattern, executor=None):
        if "__fail__" in pattern:
            raise OSError("cannot expand pattern")
        return await original_glob(pattern, executor)

    monkeypatch.setattr(crawler_module, "async_glob", failing_glob)

    counters = Counters()
    channel = PathChannel(100)
    with pytest.raises(CrawlError) as exc_info:
        await Crawler(counters).run([f"{temp_dir}/__fail__*", f"{temp_dir}/*"], channel, FileMode())
    await channel.close()

    assert exc_info.value.failed_paths == [f"{temp_dir}/__fail__*"]
    assert [path async for path in channel] == [temp_dir / "keep.txt"]


@pytest.mark.asyncio
async def test_vanished_path_counts_crawl_op_but_not_stat(temp_dir):
    counters = Counters()
    channel = PathChannel(10)
    crawler = Crawler(counters)

    with pytest.raises(FileNotFoundError):
        await DirectoryMode().visit(crawler, temp_dir / "missing", channel)

    assert counters.crawl_ops.value == 1
    assert counters.stat_ops.value == 0


@pytest.mark.asyncio
async def test_match_removed_before_inspection_is_skipped(temp_dir, monkeypatch):
    """A match removed by the other pass between expansion and lstat is not a crawl failure."""
    (temp_dir / "present").write_text("p")

    async def stale_glob(pattern, executor=None):
        return [temp_dir / "already-gone", temp_dir / "present"]

    monkeypatch.setattr(crawler_module, "async_glob", stale_glob)

    counters, queued = await crawl([f"{temp_dir}/*"], FileMode())

    assert queued == [temp_dir / "present"]
    assert counters.crawl_ops.value == 2
    assert counters.stat_ops.value == 1


@pytest.mark.asyncio
async def test_crawler_blocks_on_full_channel_until_drained(temp_dir):
    """With capacity 1 the crawl only finishes because a consumer keeps draining."""
    for i in range(20):
        (temp_dir / f"file{i}").write_text(str(i))

    counters = Counters()
    channel = PathChannel(1)
    received = []

    async def consume():
        async for path in channel:
            received.append(path)

    consumer = asyncio.create_task(consume())
    await asyncio.wait_for(Crawler(counters).run([f"{temp_dir}/*"], channel, FileMode()), timeout=10)
    await channel.close()
    await asyncio.wait_for(consumer, timeout=5)

    assert len(received) == 20
    assert counters.objects_found.value == 20


@pytest.mark.asyncio
@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="FIFOs not supported")
async def test_special_files_are_skipped_by_file_mode(temp_dir):
    os.mkfifo(temp_dir / "pipe")

    counters, queued = await crawl([f"{temp_dir}/*"], FileMode())

    assert queued == []
    assert counters.objects_found.value == 0
    assert counters.stat_ops.value == 1

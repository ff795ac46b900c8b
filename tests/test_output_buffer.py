import threading
import time

from cmifloppy.output_buffer import ERROR_PREFIX, OutputBuffer


def test_read_returns_appended_lines_then_empty():
    buf = OutputBuffer(newline="\n")
    buf.append("one")
    buf.append("two")
    assert buf.read_and_clear() == "one\ntwo\n"
    assert buf.read_and_clear() == ""


def test_error_lines_are_prefixed():
    buf = OutputBuffer(newline="\r\n")
    buf.append("ok")
    buf.append_error("bad sector")
    assert buf.read_and_clear() == "ok\r\n" + ERROR_PREFIX + "bad sector\r\n"


def test_len_counts_buffered_lines():
    buf = OutputBuffer()
    assert len(buf) == 0
    buf.append("a")
    buf.append_error("b")
    assert len(buf) == 2
    buf.read_and_clear()
    assert len(buf) == 0


def test_concurrent_appends_are_never_lost_or_duplicated():
    buf = OutputBuffer(newline="\n")
    per_writer = 2000
    start = threading.Event()

    def writer(tag, sink):
        start.wait()
        for i in range(per_writer):
            sink(f"{tag}{i}")

    threads = [
        threading.Thread(target=writer, args=("o", buf.append)),
        threading.Thread(target=writer, args=("e", buf.append_error)),
    ]
    for t in threads:
        t.start()
    start.set()

    seen = []
    while any(t.is_alive() for t in threads):
        seen.extend(buf.read_and_clear().splitlines())
    for t in threads:
        t.join()
    seen.extend(buf.read_and_clear().splitlines())

    assert len(seen) == 2 * per_writer
    assert len(set(seen)) == len(seen)
    # Per-writer order is preserved.
    out_lines = [s for s in seen if s.startswith("o")]
    assert out_lines == [f"o{i}" for i in range(per_writer)]
    assert buf.read_and_clear() == ""


def test_wait_quiet_returns_once_output_stops():
    buf = OutputBuffer()

    def chatter():
        for i in range(5):
            buf.append(f"line {i}")
            time.sleep(0.02)

    t = threading.Thread(target=chatter)
    t.start()
    t0 = time.monotonic()
    assert buf.wait_quiet(quiet_s=0.15, timeout_s=3.0) is True
    t.join()
    assert time.monotonic() - t0 >= 0.15
    assert len(buf) == 5


def test_wait_quiet_times_out_while_output_continues():
    buf = OutputBuffer()
    stop = threading.Event()

    def chatter():
        while not stop.is_set():
            buf.append("x")
            time.sleep(0.01)

    t = threading.Thread(target=chatter)
    t.start()
    try:
        assert buf.wait_quiet(quiet_s=0.2, timeout_s=0.3) is False
    finally:
        stop.set()
        t.join()


def test_wait_quiet_waits_at_least_the_window_after_call():
    buf = OutputBuffer()
    buf.append("old")
    time.sleep(0.05)
    t0 = time.monotonic()
    assert buf.wait_quiet(quiet_s=0.1, timeout_s=1.0) is True
    assert time.monotonic() - t0 >= 0.09

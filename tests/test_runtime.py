import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest import mock

import wasmtime

from opencc_sandbox import (
    InitializationError,
    call,
    convert_s2t,
    get_default_runtime,
    set_default_runtime,
)
from opencc_sandbox.marshaling import opencc_s2t

from sandbox_doubles import MISSING_IMPORT_WAT, fake_runtime

EPOCH_THREAD = "opencc-sandbox-epoch"


class RuntimeTests(unittest.TestCase):
    def test_lazy_single_compilation(self):
        rt, sink = fake_runtime()
        self.assertFalse(rt.ready)
        self.assertEqual(rt.compile_count, 0)
        e1, m1 = rt.acquire()
        e2, m2 = rt.acquire()
        self.assertIs(e1, e2)
        self.assertIs(m1, m2)
        self.assertEqual(rt.compile_count, 1)
        self.assertEqual(len(sink.of_type("compile")), 1)

    def test_concurrent_first_use_compiles_once(self):
        rt, _ = fake_runtime()
        inputs = [f"text {i}" for i in range(32)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda s: convert_s2t(s, runtime=rt), inputs))
        self.assertEqual(results, [s.upper() for s in inputs])
        self.assertEqual(rt.compile_count, 1)
        self.assertEqual(rt.live_instances, 0)

    def test_invalid_module(self):
        rt, _ = fake_runtime(module_source=b"\x00asm-not-a-module")
        with self.assertRaises(InitializationError):
            rt.acquire()
        self.assertEqual(rt.compile_count, 0)
        self.assertFalse(rt.ready)

    def test_missing_module_file(self):
        rt, _ = fake_runtime(module_source=None, module_path="/nonexistent/opencc.wasm")
        with self.assertRaises(InitializationError):
            rt.new_instance()

    def test_missing_import(self):
        rt, _ = fake_runtime(module_source=MISSING_IMPORT_WAT)
        with self.assertRaises(InitializationError):
            rt.new_instance()
        self.assertEqual(rt.live_instances, 0)

    def test_missing_data_dir(self):
        rt, _ = fake_runtime(data_dir="/nonexistent/opencc-data")
        with self.assertRaises(InitializationError):
            rt.new_instance()
        self.assertEqual(rt.live_instances, 0)

    def test_mount_api_mismatch_is_initialization_error(self):
        rt, _ = fake_runtime()
        for exc in (AttributeError("module 'wasmtime' has no attribute 'DirPerms'"), TypeError("too many arguments")):
            with self.subTest(exc=type(exc).__name__):
                with mock.patch.object(wasmtime.WasiConfig, "preopen_dir", side_effect=exc):
                    with self.assertRaises(InitializationError):
                        rt.new_instance()
        self.assertEqual(rt.live_instances, 0)
        self.assertEqual(convert_s2t("ok", runtime=rt), "OK")

    def test_no_data_dir(self):
        rt, _ = fake_runtime(data_dir="")
        with rt.new_instance() as inst:
            self.assertFalse(inst.closed)

    def test_close_stops_epoch_ticker(self):
        before = {t for t in threading.enumerate() if t.name == EPOCH_THREAD}
        runtimes = [fake_runtime(timeout_ms=50)[0] for _ in range(3)]
        for rt in runtimes:
            rt.acquire()
        started = {t for t in threading.enumerate() if t.name == EPOCH_THREAD} - before
        self.assertEqual(len(started), 3)
        for rt in runtimes:
            rt.close()
            rt.close()
        self.assertFalse(any(t.is_alive() for t in started))
        self.assertEqual({t for t in threading.enumerate() if t.name == EPOCH_THREAD} - before, set())

    def test_close_drops_cache(self):
        with fake_runtime()[0] as rt:
            inst = rt.new_instance()
            rt.close()
            self.assertFalse(rt.ready)
            self.assertEqual(call(inst, opencc_s2t("still open")).unwrap(), "STILL OPEN")
            inst.close()
            self.assertEqual(convert_s2t("again", runtime=rt), "AGAIN")
            self.assertEqual(rt.compile_count, 2)
        self.assertFalse(rt.ready)

    def test_default_runtime_is_shared(self):
        set_default_runtime(None)
        try:
            a = get_default_runtime()
            b = get_default_runtime()
            self.assertIs(a, b)
            self.assertFalse(a.ready)
            custom, _ = fake_runtime()
            set_default_runtime(custom)
            self.assertIs(get_default_runtime(), custom)
        finally:
            set_default_runtime(None)


if __name__ == "__main__":
    unittest.main()

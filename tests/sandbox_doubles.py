"""A small stand-in for opencc.wasm, written in WAT.

Exports the same functions as the real module. "Conversion" is ASCII
upper-casing (s2t, handle 1) and lower-casing (t2s, handle 2); other bytes
pass through. Behaviour that tests rely on:

- opencc_open: "s..." -> 1, "t..." -> 2, "c..." -> 3 (closing it traps),
  "b..." -> __cxa_throw with the config name as message, anything else -> -1
- conversion of "" returns NULL, of "!..." returns NULL, of "#..." throws
- live_allocations: malloc calls minus free/opencc_convert_free calls
- spin: never returns
- drop_exception, personality, catch: drive the remaining exception shims
- grow: memory.grow, returns the old page count or -1
"""
from __future__ import annotations
import os
import tempfile
from dataclasses import replace
from typing import List, Optional, Tuple

from opencc_sandbox import BridgeConfig, InMemoryAuditSink, SandboxRuntime

FAKE_OPENCC_WAT = r"""
(module
  (import "env" "__cxa_allocate_exception" (func $alloc_exc (param i32) (result i32)))
  (import "env" "__cxa_throw" (func $throw (param i32 i32 i32)))
  (import "env" "__cxa_free_exception" (func $free_exc (param i32)))
  (import "env" "__gxx_personality_v0" (func $personality (param i32 i32 i64 i32 i32) (result i32)))
  (import "env" "__cxa_begin_catch" (func $begin_catch (param i32) (result i32)))
  (import "env" "__cxa_end_catch" (func $end_catch))
  (memory (export "memory") 4)
  (global $heap (mut i32) (i32.const 4096))
  (global $live (mut i32) (i32.const 0))
  (global $closed (mut i32) (i32.const 0))
  (data (i32.const 16) "fake converter error\00")

  (func $malloc (export "malloc") (param $size i32) (result i32)
    (local $ptr i32)
    (local.set $ptr (global.get $heap))
    (global.set $heap
      (i32.and
        (i32.add (i32.add (global.get $heap) (local.get $size)) (i32.const 7))
        (i32.const -8)))
    (global.set $live (i32.add (global.get $live) (i32.const 1)))
    (local.get $ptr))

  (func $free (export "free") (param $ptr i32)
    (if (i32.ne (local.get $ptr) (i32.const 0))
      (then (global.set $live (i32.sub (global.get $live) (i32.const 1))))))

  (func $strlen (param $p i32) (result i32)
    (local $n i32)
    (block $done
      (loop $scan
        (br_if $done (i32.eqz (i32.load8_u (i32.add (local.get $p) (local.get $n)))))
        (local.set $n (i32.add (local.get $n) (i32.const 1)))
        (br $scan)))
    (local.get $n))

  (func $strcpy (param $dst i32) (param $src i32)
    (local $c i32)
    (block $done
      (loop $copy
        (local.set $c (i32.load8_u (local.get $src)))
        (i32.store8 (local.get $dst) (local.get $c))
        (br_if $done (i32.eqz (local.get $c)))
        (local.set $src (i32.add (local.get $src) (i32.const 1)))
        (local.set $dst (i32.add (local.get $dst) (i32.const 1)))
        (br $copy))))

  (func $raise (param $msg i32)
    (local $exc i32)
    (local.set $exc
      (call $alloc_exc (i32.add (call $strlen (local.get $msg)) (i32.const 1))))
    (call $strcpy (local.get $exc) (local.get $msg))
    (call $throw (local.get $exc) (i32.const 0) (i32.const 0))
    (unreachable))

  (func $transform (param $mode i32) (param $src i32) (result i32)
    (local $len i32) (local $dst i32) (local $i i32) (local $c i32)
    (if (i32.eqz (local.get $src)) (then (return (i32.const 0))))
    (local.set $len (call $strlen (local.get $src)))
    (if (i32.eqz (local.get $len)) (then (return (i32.const 0))))
    (if (i32.eq (i32.load8_u (local.get $src)) (i32.const 33)) (then (return (i32.const 0))))
    (if (i32.eq (i32.load8_u (local.get $src)) (i32.const 35)) (then (call $raise (local.get $src))))
    (local.set $dst (call $malloc (i32.add (local.get $len) (i32.const 1))))
    (block $done
      (loop $copy
        (br_if $done (i32.ge_u (local.get $i) (local.get $len)))
        (local.set $c (i32.load8_u (i32.add (local.get $src) (local.get $i))))
        (if (i32.eq (local.get $mode) (i32.const 1))
          (then
            (if (i32.and (i32.ge_u (local.get $c) (i32.const 97)) (i32.le_u (local.get $c) (i32.const 122)))
              (then (local.set $c (i32.sub (local.get $c) (i32.const 32))))))
          (else
            (if (i32.and (i32.ge_u (local.get $c) (i32.const 65)) (i32.le_u (local.get $c) (i32.const 90)))
              (then (local.set $c (i32.add (local.get $c) (i32.const 32)))))))
        (i32.store8 (i32.add (local.get $dst) (local.get $i)) (local.get $c))
        (local.set $i (i32.add (local.get $i) (i32.const 1)))
        (br $copy)))
    (i32.store8 (i32.add (local.get $dst) (local.get $len)) (i32.const 0))
    (local.get $dst))

  (func (export "opencc_open") (param $cfg i32) (result i32)
    (local $c i32)
    (if (i32.eqz (local.get $cfg)) (then (return (i32.const 1))))
    (local.set $c (i32.load8_u (local.get $cfg)))
    (if (i32.eq (local.get $c) (i32.const 115)) (then (return (i32.const 1))))
    (if (i32.eq (local.get $c) (i32.const 116)) (then (return (i32.const 2))))
    (if (i32.eq (local.get $c) (i32.const 99)) (then (return (i32.const 3))))
    (if (i32.eq (local.get $c) (i32.const 98)) (then (call $raise (local.get $cfg))))
    (i32.const -1))

  (func (export "opencc_convert") (param $h i32) (param $src i32) (result i32)
    (if (i32.or (i32.eq (local.get $h) (i32.const 1)) (i32.eq (local.get $h) (i32.const 3)))
      (then (return (call $transform (i32.const 1) (local.get $src)))))
    (if (i32.eq (local.get $h) (i32.const 2))
      (then (return (call $transform (i32.const 2) (local.get $src)))))
    (i32.const 0))

  (func (export "opencc_convert_free") (param $p i32)
    (call $free (local.get $p)))

  (func (export "opencc_close") (param $h i32) (result i32)
    (if (i32.eq (local.get $h) (i32.const 3)) (then (unreachable)))
    (global.set $closed (i32.add (global.get $closed) (i32.const 1)))
    (i32.const 0))

  (func (export "opencc_error") (result i32)
    (i32.const 16))

  (func (export "opencc_s2t") (param $src i32) (result i32)
    (call $transform (i32.const 1) (local.get $src)))

  (func (export "opencc_t2s") (param $src i32) (result i32)
    (call $transform (i32.const 2) (local.get $src)))

  (func (export "live_allocations") (result i32)
    (global.get $live))

  (func (export "closed_handles") (result i32)
    (global.get $closed))

  (func (export "spin")
    (loop $forever (br $forever)))

  (func (export "drop_exception") (param $size i32) (result i32)
    (call $free_exc (call $alloc_exc (local.get $size)))
    (global.get $live))

  (func (export "personality") (result i32)
    (call $personality (i32.const 1) (i32.const 1) (i64.const 0) (i32.const 0) (i32.const 0)))

  (func (export "catch") (param $exc i32) (result i32)
    (local $obj i32)
    (local.set $obj (call $begin_catch (local.get $exc)))
    (call $end_catch)
    (local.get $obj))

  (func (export "grow") (param $pages i32) (result i32)
    (memory.grow (local.get $pages)))
)
"""

# Imports a function no host provides
MISSING_IMPORT_WAT = r"""
(module
  (import "env" "__cxa_rethrow" (func $rethrow))
  (memory (export "memory") 1)
  (func (export "malloc") (param i32) (result i32) (i32.const 0))
  (func (export "free") (param i32))
)
"""

CONFIG_FILES = ("s2t.json", "t2s.json", "crashclose.json", "boom.json")


def make_data_dir(names=CONFIG_FILES) -> str:
    path = tempfile.mkdtemp(prefix="opencc-sandbox-test-")
    for name in names:
        with open(os.path.join(path, name), "w", encoding="utf-8") as f:
            f.write('{"name": "%s"}\n' % name)
    return path


def fake_config(data_dir: Optional[str] = None, **overrides) -> BridgeConfig:
    cfg = BridgeConfig(
        module_path=None,
        module_source=FAKE_OPENCC_WAT,
        data_dir=data_dir if data_dir is not None else make_data_dir(),
        inherit_stdio=False,
        check_config_files=False,
    )
    return replace(cfg, **overrides) if overrides else cfg


def fake_runtime(data_dir: Optional[str] = None, **overrides) -> Tuple[SandboxRuntime, InMemoryAuditSink]:
    sink = InMemoryAuditSink()
    return SandboxRuntime(fake_config(data_dir, **overrides), audit_sinks=[sink]), sink


def calls_to(sink: InMemoryAuditSink, export: str) -> List[dict]:
    return [e.data for e in sink.of_type("call") if e.data.get("export") == export]

"""
attendance_core — Attendance Edge Agent v1.2
============================================
Architecture: single-threaded sync loop. Devices are read one at a time,
events are pushed in acknowledged batches, cursors advance only after ack.

  constants.py    → Version, thresholds, endpoints, event vocabularies
  errors.py       → Exception types
  config.py       → Paths, logging, config load/save, helpers
  models.py       → Device, AttendanceEvent, Batch, server answers
  cursor.py       → Cursor merge/advance, resume bound, chunking
  state.py        → AgentStats window + per-device results
  store.py        → CursorStore (SQLite, durable upsert)
  http_client.py  → HTTP session with retry/pooling + HMAC signing
  api.py          → RemoteClient (register, heartbeat, devices, ingest, cursor)
  devices.py      → DeviceReader interface + ZKTeco (pyzk) adapter
  orchestrator.py → Orchestrator (cycle, per-device sync, heartbeat)
  runner.py       → Runner loop, main() + auto-restart wrapper
"""

"""
Attendance Edge Agent
=====================
Pulls attendance logs from access-control terminals on the local network and
relays them to the attendance server in acknowledged batches.

Configuration lives in config.json inside the agent home folder
(ATTENDANCE_AGENT_HOME, else %PROGRAMDATA%\\AttendanceAgent on Windows,
else ~/.attendance-agent).

Usage:
    python agent.py                  # run until stopped
    python agent.py --once           # one cycle plus heartbeat, exit code reports it
    python agent.py --config PATH    # use another config file
"""

from attendance_core.runner import run_with_auto_restart


if __name__ == "__main__":
    run_with_auto_restart()

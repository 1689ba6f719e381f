"""Remote host probing utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import paramiko

from .credentials import SSHCredentials
from .executor import CommandExecutor
from .session import RemoteSession, SSHConnectionError

_STATS_COMMAND = """
echo "---STATS---"
top -bn1 | grep 'Cpu(s)' | awk '{print "CPU_VAL:" $2 + $4}'
free -m | awk 'NR==2{printf "MEM_VAL:%.0f\\n", $3*100/$2 }'
df -h / | awk 'NR==2{print "DISK_VAL:" $5}'
uptime | awk '{print "UPTIME_VAL:" $0}'
echo "---PROCESSES---"
ps aux --sort=-%cpu --no-headers | head -15 | awk '{print $1"|"$2"|"$3"|"$4"|"$11}'
echo "---DOMAINS---"
(ls /etc/nginx/sites-enabled/ 2>/dev/null || echo "No sites found")
"""


@dataclass
class ConnectionCheck:
    success: bool
    message: str


@dataclass
class ProcessInfo:
    user: str
    pid: str
    cpu: str
    mem: str
    command: str


@dataclass
class SystemStats:
    cpu: str
    memory: str
    storage: str
    load_avg: str
    uptime: str
    processes: List[ProcessInfo] = field(default_factory=list)
    sites: List[str] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "cpu": self.cpu,
            "memory": self.memory,
            "storage": self.storage,
            "loadAvg": self.load_avg,
            "uptime": self.uptime,
            "processes": [vars(p) for p in self.processes],
            "sites": list(self.sites),
        }


def check_connection(
    credentials: SSHCredentials,
    *,
    client_factory: Callable[[], paramiko.SSHClient] | None = None,
) -> ConnectionCheck:
    """Open and immediately close a connection to validate credentials."""
    session = RemoteSession(f"check_{credentials.target}", credentials, client_factory=client_factory)
    try:
        session.connect()
    except SSHConnectionError as exc:
        return ConnectionCheck(success=False, message=str(exc))
    finally:
        session.close()
    return ConnectionCheck(success=True, message="Connected successfully")


class RemoteProbe:
    """Collects host telemetry with a single sectioned command."""

    def __init__(self, executor: Optional[CommandExecutor] = None) -> None:
        self.executor = executor or CommandExecutor()

    def collect(self, session: RemoteSession) -> SystemStats:
        output = self.executor.execute(session, _STATS_COMMAND)
        return self.parse(output)

    @staticmethod
    def parse(output: str) -> SystemStats:
        sections = re.split(r"---[A-Z]+---", output)
        stats_lines = _lines(sections, 1)
        process_lines = _lines(sections, 2)
        site_lines = _lines(sections, 3)

        def value(prefix: str) -> str:
            for line in stats_lines:
                if line.startswith(prefix):
                    return line[len(prefix):].strip()
            return ""

        uptime_line = value("UPTIME_VAL:")
        load_match = re.search(r"load average:\s*(.*)", uptime_line)
        uptime_match = re.search(r"up\s*(.*?),", uptime_line)

        processes = []
        for line in process_lines:
            parts = line.split("|")
            if len(parts) < 5:
                continue
            user, pid, cpu, mem, command = parts[:5]
            processes.append(
                ProcessInfo(
                    user=user or "?",
                    pid=pid or "?",
                    cpu=f"{cpu or '0'}%",
                    mem=f"{mem or '0'}%",
                    command=command.split("/")[-1] or command or "unknown",
                )
            )

        try:
            cpu = f"{float(value('CPU_VAL:') or 0):.0f}%"
        except ValueError:
            cpu = "0%"

        return SystemStats(
            cpu=cpu,
            memory=f"{value('MEM_VAL:') or '0'}%",
            storage=value("DISK_VAL:") or "0%",
            load_avg=load_match.group(1) if load_match else "N/A",
            uptime=uptime_match.group(1) if uptime_match else "Just started",
            processes=processes,
            sites=[
                line.strip()
                for line in site_lines
                if line.strip() and line.strip() not in ("No sites found", "default")
            ],
        )


def _lines(sections: List[str], index: int) -> List[str]:
    if index >= len(sections):
        return []
    return sections[index].strip().splitlines()

"""
ADB 适配封装

提供场景执行需要的基础操作：
- connect(addr)
- devices()
- screencap(addr) -> PNG bytes
- tap(addr, x, y)
- swipe(addr, x1, y1, x2, y2, dur_ms)
- input_text(addr, text)
- keyevent(addr, keycode)
- shell(addr, cmd)
- get_volume(addr) -> int
"""
from __future__ import annotations

import re
import subprocess
import time
from typing import List, Union

_VOLUME_RE = re.compile(r"currentVolume=\s*(\d+)")


class AdbError(RuntimeError):
    pass


class Adb:
    def __init__(self, adb_path: str = "adb") -> None:
        self.adb = adb_path

    def _run(self, args: List[str], timeout: float = 10.0) -> subprocess.CompletedProcess:
        try:
            cp = subprocess.run(
                [self.adb, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise AdbError(f"找不到 ADB 可执行文件: {self.adb}") from e
        except subprocess.TimeoutExpired as e:
            raise AdbError(f"ADB 命令超时: {' '.join(args)}") from e
        return cp

    def _check(self, cp: subprocess.CompletedProcess) -> None:
        if cp.returncode != 0:
            raise AdbError((cp.stderr or b"").decode(errors="ignore"))

    def connect(self, addr: str, timeout: float = 10.0) -> bool:
        cp = self._run(["connect", addr], timeout=timeout)
        out = (cp.stdout or b"").decode(errors="ignore").lower()
        return cp.returncode == 0 and ("connected" in out or "already" in out)

    def devices(self, timeout: float = 10.0) -> List[str]:
        cp = self._run(["devices"], timeout=timeout)
        out = (cp.stdout or b"").decode(errors="ignore").splitlines()
        result = []
        for line in out:
            line = line.strip()
            if not line or line.lower().startswith("list of devices"):
                continue
            parts = line.split()
            if len(parts) >= 2 and parts[1] == "device":
                result.append(parts[0])
        return result

    def screencap(self, addr: str, timeout: float = 15.0) -> bytes:
        try:
            out = subprocess.check_output(
                [self.adb, "-s", addr, "exec-out", "screencap", "-p"],
                stderr=subprocess.STDOUT,
                timeout=timeout,
            )
            return out
        except FileNotFoundError as e:
            raise AdbError(f"找不到 ADB 可执行文件: {self.adb}") from e
        except subprocess.CalledProcessError as e:
            raise AdbError((e.output or b"").decode(errors="ignore")) from e
        except subprocess.TimeoutExpired as e:
            raise AdbError("ADB 截图超时") from e

    def tap(self, addr: str, x: int, y: int, timeout: float = 10.0) -> None:
        cp = self._run(["-s", addr, "shell", "input", "tap", str(x), str(y)], timeout=timeout)
        self._check(cp)

    def swipe(self, addr: str, x1: int, y1: int, x2: int, y2: int, dur_ms: int = 300, timeout: float = 10.0) -> None:
        cp = self._run(
            ["-s", addr, "shell", "input", "swipe", str(x1), str(y1), str(x2), str(y2), str(dur_ms)],
            timeout=timeout,
        )
        self._check(cp)

    def input_text(self, addr: str, text: str, timeout: float = 10.0) -> None:
        # input text 不接受空格，需转义为 %s
        escaped = str(text).replace(" ", "%s")
        cp = self._run(["-s", addr, "shell", "input", "text", escaped], timeout=timeout)
        self._check(cp)

    def keyevent(self, addr: str, keycode: Union[int, str], timeout: float = 10.0) -> None:
        cp = self._run(["-s", addr, "shell", "input", "keyevent", str(keycode)], timeout=timeout)
        self._check(cp)

    def shell(self, addr: str, cmd: str, timeout: float = 10.0) -> tuple[int, str]:
        """执行 adb shell 命令，返回 (returncode, output)"""
        cp = self._run(["-s", addr, "shell", cmd], timeout=timeout)
        out = (cp.stdout or b"").decode(errors="ignore")
        return cp.returncode, out

    def get_volume(self, addr: str, timeout: float = 10.0) -> int:
        """读取当前媒体音量

        通过两次静音切换触发系统音量日志（音量本身不变），
        再从 logcat 中解析最后一条 currentVolume。
        """
        self._run(["-s", addr, "logcat", "-c"], timeout=timeout)
        for _ in range(2):
            self.keyevent(addr, "KEYCODE_VOLUME_MUTE", timeout=timeout)
            time.sleep(0.2)
        _, out = self.shell(addr, "logcat -d | grep currentVolume", timeout=timeout)
        return parse_volume(out)


def parse_volume(logcat_output: str) -> int:
    """从 logcat 输出中解析最近一次 currentVolume。"""
    matches = _VOLUME_RE.findall(logcat_output or "")
    if not matches:
        raise AdbError("无法从 logcat 解析音量")
    return int(matches[-1])


__all__ = ["Adb", "AdbError", "parse_volume"]

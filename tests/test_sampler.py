"""
单元测试：采样

测试覆盖：
- CPU 平均值、限幅、NaN / 无核
- cgroup v1 / v2 读取与回退
- measurement_from_raw 的内存来源选择与除零
- 真实采样结果在 [0, 1] 内
"""

import math
from datetime import datetime, timezone
from unittest.mock import patch

import psutil
import pytest

from metrics_agent.collectors import (
    MeasurementEngine,
    RawSample,
    cpu_utilization,
    measurement_from_raw,
    read_cgroup_memory,
)
from metrics_agent.collectors.cpu import read_cpu_percent_per_core
from metrics_agent.collectors.memory import (
    CGROUP_V1_NO_LIMIT,
    describe_memory,
    read_host_memory,
    utilization_ratio,
)

GiB = 1024 ** 3


def write_cgroup_v1(root, usage=None, max_usage=None, limit=None):
    mem_dir = root / "memory"
    mem_dir.mkdir(parents=True, exist_ok=True)
    if usage is not None:
        (mem_dir / "memory.usage_in_bytes").write_text(f"{usage}\n")
    if max_usage is not None:
        (mem_dir / "memory.max_usage_in_bytes").write_text(f"{max_usage}\n")
    if limit is not None:
        (mem_dir / "memory.stat").write_text(
            "cache 1234\n"
            "rss 5678\n"
            f"hierarchical_memory_limit {limit}\n"
            "hierarchical_memsw_limit 9223372036854771712\n"
        )


def write_cgroup_v2(root, current=None, peak=None, limit=None):
    root.mkdir(parents=True, exist_ok=True)
    if current is not None:
        (root / "memory.current").write_text(f"{current}\n")
    if peak is not None:
        (root / "memory.peak").write_text(f"{peak}\n")
    if limit is not None:
        (root / "memory.max").write_text(f"{limit}\n")


class TestCpuUtilization:
    """CPU 使用率计算测试"""

    def test_mean_of_cores(self):
        assert cpu_utilization([10.0, 30.0, 50.0, 70.0]) == pytest.approx(0.4)

    def test_no_cores(self):
        assert cpu_utilization([]) == 0.0

    def test_nan(self):
        assert cpu_utilization([float("nan"), 10.0]) == 0.0

    def test_clamped(self):
        assert cpu_utilization([150.0, 120.0]) == 1.0
        assert cpu_utilization([-5.0]) == 0.0


class TestCgroupMemory:
    """cgroup 内存读取测试"""

    def test_v1(self, tmp_path):
        """测试：v1 用量 / 峰值 / 限制"""
        write_cgroup_v1(tmp_path, usage=GiB, max_usage=2 * GiB, limit=4 * GiB)

        memory = read_cgroup_memory(tmp_path)

        assert memory.version == 1
        assert memory.usage_bytes == GiB
        assert memory.peak_bytes == 2 * GiB
        assert memory.limit_bytes == 4 * GiB

    def test_v1_no_limit(self, tmp_path):
        """测试：v1 未设置限制时视为不可用"""
        write_cgroup_v1(tmp_path, usage=GiB, max_usage=GiB, limit=CGROUP_V1_NO_LIMIT + 4096)

        assert read_cgroup_memory(tmp_path) is None

    def test_v1_missing_stat(self, tmp_path):
        """测试：v1 缺少 memory.stat"""
        write_cgroup_v1(tmp_path, usage=GiB, max_usage=GiB)

        assert read_cgroup_memory(tmp_path) is None

    def test_v1_without_peak(self, tmp_path):
        write_cgroup_v1(tmp_path, usage=GiB, limit=2 * GiB)

        memory = read_cgroup_memory(tmp_path)

        assert memory.peak_bytes is None
        assert memory.limit_bytes == 2 * GiB

    def test_v2(self, tmp_path):
        """测试：v2 memory.current / memory.peak / memory.max"""
        write_cgroup_v2(tmp_path, current=GiB, peak=3 * GiB, limit=4 * GiB)

        memory = read_cgroup_memory(tmp_path)

        assert memory.version == 2
        assert memory.usage_bytes == GiB
        assert memory.peak_bytes == 3 * GiB
        assert memory.limit_bytes == 4 * GiB

    def test_v2_unlimited(self, tmp_path):
        """测试：v2 memory.max 为 max"""
        write_cgroup_v2(tmp_path, current=GiB, limit="max")

        assert read_cgroup_memory(tmp_path) is None

    def test_garbage(self, tmp_path):
        write_cgroup_v2(tmp_path, current="abc", limit=GiB)

        assert read_cgroup_memory(tmp_path) is None

    def test_missing_root(self, tmp_path):
        assert read_cgroup_memory(tmp_path / "nope") is None

    def test_describe_memory(self, tmp_path):
        write_cgroup_v1(tmp_path, usage=GiB, limit=2 * GiB)

        text = describe_memory(tmp_path)

        assert "psutil: used memory" in text
        assert f"cgroups v1: limit {2 * GiB}" in text


class TestMeasurementFromRaw:
    """原始读数 -> Measurement 测试"""

    def test_host_memory(self):
        raw = RawSample(
            cpu_percent_per_core=[20.0, 40.0],
            used_memory_bytes=GiB,
            total_memory_bytes=4 * GiB,
        )

        m = measurement_from_raw(raw)

        assert m.cpu_utilization == pytest.approx(0.3)
        assert m.mem_utilization == pytest.approx(0.25)
        assert m.max_mem_utilization == m.mem_utilization
        assert m.sample_count == 1

    def test_cgroup_preferred(self):
        raw = RawSample(
            cpu_percent_per_core=[0.0],
            used_memory_bytes=GiB,
            total_memory_bytes=4 * GiB,
            cgroup_usage_bytes=GiB,
            cgroup_peak_bytes=3 * GiB // 2,
            cgroup_limit_bytes=2 * GiB,
        )

        m = measurement_from_raw(raw)

        assert m.mem_utilization == pytest.approx(0.5)
        assert m.max_mem_utilization == pytest.approx(0.75)

    def test_cgroup_without_peak(self):
        raw = RawSample(
            cpu_percent_per_core=[0.0],
            used_memory_bytes=0,
            total_memory_bytes=0,
            cgroup_usage_bytes=GiB,
            cgroup_limit_bytes=2 * GiB,
        )

        m = measurement_from_raw(raw)

        assert m.max_mem_utilization == m.mem_utilization == pytest.approx(0.5)

    def test_zero_limit(self):
        """测试：限制为 0 时不产生 NaN，返回 0.0"""
        raw = RawSample(
            cpu_percent_per_core=[],
            used_memory_bytes=0,
            total_memory_bytes=0,
            cgroup_usage_bytes=GiB,
            cgroup_peak_bytes=GiB,
            cgroup_limit_bytes=0,
        )

        m = measurement_from_raw(raw)

        assert m.cpu_utilization == 0.0
        assert m.mem_utilization == 0.0
        assert m.max_mem_utilization == 0.0

    def test_usage_above_limit_clamped(self):
        raw = RawSample(
            cpu_percent_per_core=[10.0],
            used_memory_bytes=0,
            total_memory_bytes=0,
            cgroup_usage_bytes=3 * GiB,
            cgroup_limit_bytes=2 * GiB,
        )

        assert measurement_from_raw(raw).mem_utilization == 1.0

    def test_timestamp(self):
        ts = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        raw = RawSample(cpu_percent_per_core=[1.0], used_memory_bytes=1, total_memory_bytes=2)

        assert measurement_from_raw(raw, timestamp=ts).timestamp == ts

    def test_utilization_ratio(self):
        assert utilization_ratio(1, 0) == 0.0
        assert utilization_ratio(None, 10) == 0.0
        assert utilization_ratio(5, 10) == 0.5
        assert not math.isnan(utilization_ratio(float("nan"), 1))


class TestMeasurementEngine:
    """真实采样测试"""

    def test_measurement(self, tmp_path):
        engine = MeasurementEngine(cgroup_root=tmp_path)

        m = engine.sample()

        assert not math.isnan(m.cpu_utilization)
        assert not math.isnan(m.mem_utilization)
        assert 0.0 <= m.cpu_utilization <= 1.0
        assert 0.0 <= m.mem_utilization <= 1.0
        assert m.max_mem_utilization == m.mem_utilization
        assert m.sample_count == 1

    def test_measurement_times(self):
        engine = MeasurementEngine()
        for _ in range(10):
            m = engine.sample()
            assert 0.0 <= m.cpu_utilization <= 1.0
            assert 0.0 <= m.mem_utilization <= 1.0
            assert m.max_mem_utilization >= m.mem_utilization

    def test_uses_cgroup(self, tmp_path):
        write_cgroup_v2(tmp_path, current=GiB, peak=GiB, limit=4 * GiB)
        engine = MeasurementEngine(cgroup_root=tmp_path)

        raw = engine.sample_raw()

        assert raw.cgroup_usage_bytes == GiB
        assert raw.cgroup_limit_bytes == 4 * GiB
        assert engine.sample().mem_utilization == pytest.approx(0.25)

    def test_undecodable_cgroup_file(self, tmp_path):
        """测试：cgroup 文件内容不是合法 UTF-8 时回退到整机内存"""
        (tmp_path / "memory.current").write_bytes(b"\xff\xfe\n")
        (tmp_path / "memory.max").write_bytes(b"\xff\xfe\n")
        engine = MeasurementEngine(cgroup_root=tmp_path)

        m = engine.sample()

        assert read_cgroup_memory(tmp_path) is None
        assert 0.0 <= m.cpu_utilization <= 1.0
        assert 0.0 <= m.mem_utilization <= 1.0

    def test_psutil_errors(self, tmp_path):
        """测试：psutil 抛出 AccessDenied 等异常时采样不中断"""
        with patch("psutil.virtual_memory", side_effect=psutil.AccessDenied()), \
                patch("psutil.cpu_percent", side_effect=psutil.AccessDenied()):
            assert read_host_memory() == (0, 0)
            assert read_cpu_percent_per_core() == []

            m = MeasurementEngine(cgroup_root=tmp_path).sample()

        assert m.cpu_utilization == 0.0
        assert m.mem_utilization == 0.0

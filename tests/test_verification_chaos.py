"""Verification Test: Chaos Monkey - Random process termination resilience.

Processes come and go while vpsdash enumerates, detects and authorizes.
Nothing may crash on NoSuchProcess, AccessDenied or ZombieProcess, and an
authorization decision must reflect the process table at the time it is made.
"""

import asyncio
import multiprocessing
import random
import time

import pytest

from vpsdash.authorizer import KillAuthorizer
from vpsdash.detector import ProcessDetector
from vpsdash.models import KillReason
from vpsdash.monitor import HostMonitor, collect_processes


def dummy_worker(duration: float = 60.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


def _cleanup(processes) -> None:
    for p in processes:
        if p.is_alive():
            p.terminate()
    for p in processes:
        p.join(timeout=1.0)


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_enumeration_survives_process_termination(self):
        """
        Test that enumeration doesn't crash when processes die mid-scan.

        Processes can terminate at any time while psutil walks /proc.
        """
        processes = []
        for _ in range(50):
            p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
            p.start()
            processes.append(p)

        try:
            assert len(collect_processes()) >= 25

            for p in random.sample(processes, 25):
                if p.is_alive():
                    p.terminate()
                try:
                    snapshot = collect_processes()
                except Exception as e:
                    pytest.fail(f"Enumeration crashed with exception: {e}")
                assert isinstance(snapshot, list)
        finally:
            _cleanup(processes)

    def test_rapid_process_churn(self):
        """
        Test detection stability during rapid process churn.

        Processes are created and destroyed while the detector and the top
        process view run over fresh snapshots.
        """
        detector = ProcessDetector(overrides=["no-such-service-xyz"])
        processes = []
        scans = 0

        try:
            start_time = time.time()
            while time.time() - start_time < 3.0:
                for _ in range(5):
                    p = multiprocessing.Process(target=dummy_worker, args=(10.0,))
                    p.start()
                    processes.append(p)

                alive = [p for p in processes if p.is_alive()]
                if len(alive) > 10:
                    for p in random.sample(alive, 3):
                        p.terminate()

                snapshot = collect_processes()
                result = detector.detect(snapshot)
                assert result.matched is False
                assert len(HostMonitor.top_processes(snapshot)) <= 15
                scans += 1
                time.sleep(0.1)

            assert scans >= 5
        finally:
            _cleanup(processes)

    def test_zombie_process_handling(self):
        """
        Test that enumeration handles zombie processes gracefully.

        A child that exits before its parent joins it stays a zombie until
        it is reaped.
        """
        p = multiprocessing.Process(target=dummy_worker, args=(0.1,))
        p.start()
        time.sleep(0.3)

        try:
            for _ in range(3):
                assert isinstance(collect_processes(), list)
        finally:
            p.join(timeout=1.0)

    @pytest.mark.asyncio
    async def test_authorization_follows_process_exit(self, fake_probe):
        """
        A PID allowed by name while alive is denied once it has exited.
        """
        p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
        p.start()
        await asyncio.sleep(0.2)

        authorizer = KillAuthorizer(
            ProcessDetector(overrides=["no-such-service-xyz"]),
            fake_probe,
            25565,
            allowed_matchers=["python"],
            process_source=collect_processes,
        )
        try:
            decision = await authorizer.is_kill_pid_allowed(p.pid)
            assert decision.allowed is True
            assert decision.reason is KillReason.ALLOWLIST_MATCH

            p.terminate()
            p.join(timeout=2.0)

            decision = await authorizer.is_kill_pid_allowed(p.pid)
            assert decision.allowed is False
        finally:
            _cleanup([p])

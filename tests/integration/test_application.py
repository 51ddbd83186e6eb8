"""
Integration tests for the Application wiring and the backup tool.

Tests cover:
- Bootstrap through the Application, then coordinated mutations
- Notification settings applied from the loaded configuration
- Backup export / validate via BackupCLI
- Start / stop lifecycle
"""

import asyncio
import json

import pytest

from backoffice.schoolsync.config import (
    BootstrapConfig,
    RemoteBackend,
    RemoteConfig,
    RetentionConfig,
    SyncConfig,
)
from backoffice.schoolsync.gateway.memory import InMemoryRemoteStore
from backoffice.schoolsync.main import Application
from backoffice.schoolsync.store.backup import export_backup
from backoffice.schoolsync.store.records import AppConfig, Collection
from backoffice.schoolsync.tools.backup_cli import BackupCLI


def memory_config(**retention) -> SyncConfig:
    return SyncConfig(
        remote=RemoteConfig(backend=RemoteBackend.MEMORY),
        retention=RetentionConfig(**retention),
    )


class TestApplication:
    """Tests for Application."""

    @pytest.fixture
    def remote(self):
        remote = InMemoryRemoteStore()
        remote.seed("students", [{"id": "ST01", "session": "2024-2025", "name": "Asha"}])
        return remote

    @pytest.mark.asyncio
    async def test_bootstrap_then_create(self, remote):
        app = Application(memory_config(), client=remote)

        result = await app.bootstrap()
        outcome = await app.coordinator.create(
            Collection.FEES, {"studentId": "ST01", "amount": 500}
        )

        assert result.online
        assert outcome.success
        assert outcome.record.session == "2024-2025"
        assert remote.row_ids("fees") == [outcome.record.id]
        active = app.partitioner.active(Collection.STUDENTS, app.store.get(Collection.STUDENTS))
        assert [r.id for r in active] == ["ST01"]

    @pytest.mark.asyncio
    async def test_notification_settings_applied(self, remote):
        config = AppConfig.default()
        settings = dict(config.settings, notificationLimit=3, enableNotifications=False)
        remote.seed("config", [AppConfig(settings=settings).to_row()])
        app = Application(memory_config(), client=remote)

        await app.bootstrap()

        assert app.notifications.limit == 3
        assert not app.notifications.enabled

    @pytest.mark.asyncio
    async def test_null_notification_limit_keeps_default(self, remote):
        settings = dict(AppConfig.default().settings, notificationLimit=None)
        remote.seed("config", [AppConfig(settings=settings).to_row()])
        app = Application(memory_config(), client=remote)
        limit = app.notifications.limit

        result = await app.bootstrap()

        assert result.online
        assert app.notifications.limit == limit

    @pytest.mark.asyncio
    async def test_memory_backend_from_config(self):
        app = Application(memory_config())

        result = await app.bootstrap()

        assert isinstance(app.gateway.client, InMemoryRemoteStore)
        assert result.online

    @pytest.mark.asyncio
    async def test_start_and_stop(self, remote):
        app = Application(memory_config(reaper_interval_seconds=60), client=remote)

        task = asyncio.create_task(app.start())
        for _ in range(100):
            if app.loader.status.value != "pending" and app._tasks:
                break
            await asyncio.sleep(0.01)

        assert app.store.ids(Collection.STUDENTS) == {"ST01"}
        assert len(app._tasks) == 1

        app.request_shutdown()
        await asyncio.wait_for(task, timeout=1)
        await app.stop()

        assert not remote.is_connected


class TestBackupCLI:
    """Tests for BackupCLI."""

    @pytest.mark.asyncio
    async def test_export(self):
        remote = InMemoryRemoteStore()
        remote.seed("employees", [{"id": "EMP001", "session": "2024-2025", "name": "Ravi"}])
        app = Application(memory_config(), client=remote)

        output = await BackupCLI().export(app)

        document = json.loads(output)
        assert [row["id"] for row in document["employees"]] == ["EMP001"]
        assert document["schoolProfile"]["currentSession"] == "2024-2025"

    @pytest.mark.asyncio
    async def test_export_refuses_offline(self):
        remote = InMemoryRemoteStore()
        remote.fail_always("*", "select", "timeout")
        config = memory_config()
        config.bootstrap = BootstrapConfig(max_retries=0, retry_delay_ms=0)
        app = Application(config, client=remote)

        assert await BackupCLI().export(app) is None

    @pytest.mark.asyncio
    async def test_validate(self):
        app = Application(memory_config(), client=InMemoryRemoteStore())
        await app.bootstrap()
        text = export_backup(app.store)

        assert BackupCLI().validate(text) == []

    def test_validate_reports_problems(self):
        problems = BackupCLI().validate(json.dumps({"students": []}))

        assert any(p.startswith("employees") for p in problems)
        assert any(p.startswith("schoolProfile") for p in problems)

import tempfile
import unittest

from easy_deploy.deploy import DeploymentRecord, DeploymentStatus, StepStatus
from easy_deploy.store import InMemoryStore, JsonFileStore, RecordNotFoundError


def _record(deploy_id: str = "d1", host: str = "203.0.113.5", user: str = "root") -> DeploymentRecord:
    return DeploymentRecord(
        id=deploy_id,
        host=host,
        user=user,
        app_name="my-app",
        repo_url="https://github.com/acme/site.git",
        branch="main",
        port=3000,
    )


class StoreContract:
    """Behaviour shared by every store backend."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self) -> None:
        self.store = self.make_store()
        self.store.create(_record())

    def test_find_by_id(self) -> None:
        record = self.store.find_by_id("d1")
        self.assertEqual(record.app_name, "my-app")
        self.assertEqual(record.status, DeploymentStatus.RUNNING)
        self.assertIsNone(self.store.find_by_id("missing"))

    def test_cancelled_status_is_sticky(self) -> None:
        self.store.update("d1", {"status": "CANCELLED"})
        self.store.update("d1", {"status": "SUCCESS", "logs_append": "late line"})
        record = self.store.find_by_id("d1")
        self.assertEqual(record.status, DeploymentStatus.CANCELLED)
        self.assertEqual(record.logs, "late line")

    def test_logs_are_appended(self) -> None:
        self.store.update("d1", {"logs_append": "[10:00:00] one"})
        self.store.update("d1", {"logs_append": "[10:00:01] two"})
        self.assertEqual(self.store.find_by_id("d1").logs, "[10:00:00] one\n[10:00:01] two")

    def test_steps_are_replaced(self) -> None:
        steps = [s.to_dict() for s in self.store.find_by_id("d1").steps]
        steps[0]["status"] = "success"
        self.store.update("d1", {"steps": steps})
        self.assertEqual(self.store.find_by_id("d1").steps[0].status, StepStatus.SUCCESS)

    def test_update_unknown_id(self) -> None:
        with self.assertRaises(RecordNotFoundError):
            self.store.update("missing", {"status": "FAILED"})

    def test_update_unknown_field(self) -> None:
        with self.assertRaises(KeyError):
            self.store.update("d1", {"colour": "blue"})

    def test_duplicate_create(self) -> None:
        with self.assertRaises(ValueError):
            self.store.create(_record())

    def test_find_by_host_and_user(self) -> None:
        self.store.create(_record("d2"))
        self.store.create(_record("d3", user="deploy"))
        ids = [r.id for r in self.store.find_by_host_and_user("203.0.113.5", "root")]
        self.assertEqual(sorted(ids), ["d1", "d2"])


class InMemoryStoreTests(StoreContract, unittest.TestCase):
    def make_store(self):
        return InMemoryStore()

    def test_returned_records_are_copies(self) -> None:
        record = self.store.find_by_id("d1")
        record.status = DeploymentStatus.FAILED
        self.assertEqual(self.store.find_by_id("d1").status, DeploymentStatus.RUNNING)


class JsonFileStoreTests(StoreContract, unittest.TestCase):
    def make_store(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        return JsonFileStore(self._tmp.name)

    def test_updates_are_visible_to_another_instance(self) -> None:
        self.store.update("d1", {"status": "CANCELLED"})
        other = JsonFileStore(self._tmp.name)
        self.assertEqual(other.find_by_id("d1").status, DeploymentStatus.CANCELLED)


if __name__ == "__main__":
    unittest.main()

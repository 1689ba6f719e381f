import unittest

from easy_deploy.deploy import (
    STEP_CATALOG,
    AuthType,
    DeployConfig,
    DeploymentRecord,
    DeploymentStatus,
    DeployResult,
    Framework,
    Step,
    StepStatus,
    sanitize_app_name,
)
from easy_deploy.deploy.models import initial_steps, parse_port


class SanitizeTests(unittest.TestCase):
    def test_replaces_unsafe_characters(self) -> None:
        self.assertEqual(sanitize_app_name("My App!"), "my-app-")
        self.assertEqual(sanitize_app_name("shop_v2.prod"), "shop-v2-prod")

    def test_is_idempotent(self) -> None:
        for name in ("My App!", "already-safe", "Ünïcode Näme", ""):
            once = sanitize_app_name(name)
            self.assertEqual(sanitize_app_name(once), once)


class DeployConfigTests(unittest.TestCase):
    def test_from_camel_case_payload(self) -> None:
        config = DeployConfig.from_dict(
            {
                "appName": "My App",
                "repoUrl": "https://github.com/acme/site.git",
                "authType": "token",
                "token": "ghp_x",
                "port": 8080,
                "rootDirectory": "web",
                "framework": "next",
            }
        )
        self.assertEqual(config.safe_app_name, "my-app")
        self.assertEqual(config.auth_type, AuthType.TOKEN)
        self.assertEqual(config.framework, Framework.NEXT)
        self.assertEqual(config.port_number, 8080)
        self.assertEqual(config.branch, "main")
        self.assertEqual(config.root_directory, "web")
        self.assertEqual(config.secrets, ["ghp_x"])

    def test_defaults(self) -> None:
        config = DeployConfig.from_dict({"app_name": "a", "repo_url": "https://x/y.git", "port": ""})
        self.assertEqual(config.auth_type, AuthType.PUBLIC)
        self.assertEqual(config.framework, Framework.NODE)
        self.assertEqual(config.port_number, 3000)

    def test_unparsable_port_falls_back(self) -> None:
        self.assertEqual(parse_port("abc"), 3000)
        self.assertEqual(parse_port(None), 3000)
        self.assertEqual(parse_port(" 5000 "), 5000)


class StepTests(unittest.TestCase):
    def test_catalog_order_and_fatality(self) -> None:
        steps = initial_steps()
        self.assertEqual([s.name for s in steps], list(STEP_CATALOG))
        self.assertTrue(all(s.status == StepStatus.PENDING for s in steps))
        self.assertEqual([s.is_fatal for s in steps], [True] * 5 + [False] * 2)

    def test_round_trip_keeps_details(self) -> None:
        step = Step("Clone Repository", StepStatus.FAILURE, "Git Authentication failed.")
        self.assertEqual(Step.from_dict(step.to_dict()), step)
        self.assertNotIn("details", Step("System Setup").to_dict())


class RecordTests(unittest.TestCase):
    def test_record_from_dict_fills_missing_steps(self) -> None:
        record = DeploymentRecord.from_dict({"id": "d1", "status": "CANCELLED"})
        self.assertEqual(record.status, DeploymentStatus.CANCELLED)
        self.assertEqual(len(record.steps), len(STEP_CATALOG))

    def test_terminal_statuses(self) -> None:
        self.assertFalse(DeploymentStatus.RUNNING.is_terminal)
        self.assertTrue(DeploymentStatus.CANCELLED.is_terminal)

    def test_result_payload_uses_deploy_id_key(self) -> None:
        result = DeployResult(success=True, message="Deployment successful", deploy_id="d1", steps=initial_steps())
        payload = result.to_dict()
        self.assertEqual(payload["deployId"], "d1")
        self.assertEqual(len(payload["steps"]), 7)


if __name__ == "__main__":
    unittest.main()

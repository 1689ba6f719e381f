import unittest

from easy_deploy.deploy import (
    BuildError,
    CertificateError,
    CloneAuthError,
    CloneGenericError,
    CloneNotFoundError,
    ConfigValidationError,
    ProjectValidationError,
    SetupError,
    StartError,
)
from easy_deploy.deploy import outputs


class CloneOutputTests(unittest.TestCase):
    def test_authentication_failures(self) -> None:
        for text in (
            "remote: Invalid username or password.\nfatal: Authentication failed for 'https://github.com/a/b.git/'",
            "fatal: could not read Username for 'https://github.com': No such device or address",
            "git@github.com: Permission denied (publickey).\nfatal: Could not read from remote repository.",
        ):
            outcome = outputs.interpret_clone(text)
            self.assertFalse(outcome.ok)
            self.assertIsInstance(outcome.error, CloneAuthError)
            self.assertEqual(str(outcome.error), "Git Authentication failed.")

    def test_missing_branch_or_repository(self) -> None:
        outcome = outputs.interpret_clone("fatal: Remote branch develop Not Found in upstream origin")
        self.assertIsInstance(outcome.error, CloneNotFoundError)

    def test_other_fatal_error(self) -> None:
        outcome = outputs.interpret_clone("fatal: destination path '.' already exists and is not an empty directory.")
        self.assertIsInstance(outcome.error, CloneGenericError)

    def test_clean_clone(self) -> None:
        outcome = outputs.interpret_clone("Cloning into '.'...\n")
        self.assertTrue(outcome.ok)
        outcome.raise_for_error()


class StepOutputTests(unittest.TestCase):
    def test_setup_requires_marker(self) -> None:
        self.assertTrue(outputs.interpret_setup("...\nSETUP_OK\n").ok)
        self.assertIsInstance(outputs.interpret_setup("E: Unable to locate package").error, SetupError)

    def test_listing_requires_package_json_for_node(self) -> None:
        self.assertTrue(outputs.interpret_listing("package.json\nsrc\n", requires_package_json=True).ok)
        outcome = outputs.interpret_listing("README.md\n", requires_package_json=True)
        self.assertIsInstance(outcome.error, ProjectValidationError)
        self.assertTrue(outputs.interpret_listing("app.py\n", requires_package_json=False).ok)
        self.assertFalse(outputs.interpret_listing("", requires_package_json=False).ok)

    def test_install_and_build_failures(self) -> None:
        self.assertIsInstance(outputs.interpret_install("npm ERR! code ERESOLVE").error, BuildError)
        self.assertIsInstance(outputs.interpret_install("INSTALL_FAILED").error, BuildError)
        self.assertTrue(outputs.interpret_install("added 120 packages in 4s").ok)
        self.assertIsInstance(outputs.interpret_build("Type error\nBUILD_FAILED").error, BuildError)

    def test_pm2_error(self) -> None:
        outcome = outputs.interpret_pm2_start("[PM2][ERROR] Script not found: /var/www/x/dist/index.js")
        self.assertIsInstance(outcome.error, StartError)
        self.assertTrue(outputs.interpret_pm2_start("[PM2] Done.").ok)

    def test_nginx_test(self) -> None:
        ok = "nginx: the configuration file /etc/nginx/nginx.conf syntax is ok\nnginx: configuration file test is successful"
        self.assertTrue(outputs.interpret_nginx_test(ok).ok)
        outcome = outputs.interpret_nginx_test('nginx: [emerg] unknown directive "servr_name"')
        self.assertIsInstance(outcome.error, ConfigValidationError)

    def test_certbot(self) -> None:
        self.assertTrue(outputs.interpret_certbot("Congratulations! You have successfully enabled HTTPS").ok)
        self.assertTrue(outputs.interpret_certbot("Successfully deployed certificate for a.example").ok)
        dns = outputs.interpret_certbot("Detail: DNS problem: NXDOMAIN looking up A for a.example")
        self.assertIsInstance(dns.error, CertificateError)
        self.assertEqual(str(dns.error), "SSL failed: domain does not resolve to this server yet.")
        self.assertFalse(outputs.interpret_certbot("Some challenges have failed.").ok)

    def test_public_key_extraction(self) -> None:
        outcome = outputs.interpret_public_key("\nssh-ed25519 AAAAC3Nz deploy-site\n")
        self.assertEqual(outcome.output, "ssh-ed25519 AAAAC3Nz deploy-site")
        self.assertFalse(outputs.interpret_public_key("cat: no such file").ok)


if __name__ == "__main__":
    unittest.main()

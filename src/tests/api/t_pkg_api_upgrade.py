#!/usr/bin/python
#
# CDDL HEADER START
#
# The contents of this file are subject to the terms of the
# Common Development and Distribution License (the "License").
# You may not use this file except in compliance with the License.
#
# You can obtain a copy of the license at usr/src/OPENSOLARIS.LICENSE
# or http://www.opensolaris.org/os/licensing.
# See the License for the specific language governing permissions
# and limitations under the License.
#
# When distributing Covered Code, include this CDDL HEADER in each
# file and include the License file at usr/src/OPENSOLARIS.LICENSE.
# If applicable, add the following below this CDDL HEADER, with the
# fields enclosed by brackets "[]" replaced with your own identifying
# information: Portions Copyright [yyyy] [name of copyright owner]
#
# CDDL HEADER END
#

#
# Copyright (c) 2024, Oracle and/or its affiliates. All rights reserved.
#

import pkg5unittest

import fcntl
import os
import unittest

import pkgup.client.api as api
import pkgup.client.api_errors as api_errors
import pkgup.client.publisher as publisher

from pkgup.client import pkgdefs


class TestPkgApiUpgrade(pkg5unittest.UpgradeTestCase):

        def setUp(self):
                pkg5unittest.UpgradeTestCase.setUp(self)
                self.__fds = []

        def tearDown(self):
                for fd in self.__fds:
                        os.close(fd)
                pkg5unittest.UpgradeTestCase.tearDown(self)

        def __lock(self, path, lock_type):
                fd = os.open(path, os.O_RDONLY)
                self.__fds.append(fd)
                fcntl.flock(fd, lock_type)

        def __pkg_file(self, dirname, name=None):
                if name is None:
                        name = "{0}.txt".format(dirname.split(".")[0])
                return self.read_file(os.path.join(self.lib_dir, dirname,
                    name))

        def __simple(self):
                self.install("upgradepackage", "1.0.0")
                self.publish("upgradepackage", "1.0.0")
                self.publish("upgradepackage", "1.1.0")

        def __family(self, legacy=False):
                """Installs the hasdependency family at 1.0.0 and publishes
                its newer versions."""

                self.install("hasdependency", "1.0.0", deps={
                    "isdependency": "1.0.0",
                    "isexactversiondependency": "[1.0.0]",
                }, legacy=legacy)
                self.install("isdependency", "1.0.0", legacy=legacy)
                self.install("isexactversiondependency", "1.0.0",
                    legacy=legacy)

                self.publish("hasdependency", "1.0.0", deps={
                    "isdependency": "1.0.0",
                    "isexactversiondependency": "[1.0.0]",
                })
                self.publish("hasdependency", "2.1.0", deps={
                    "isdependency": "2.0.0",
                    "isexactversiondependency": "[2.0.0]",
                })
                for ver in ("1.0.0", "1.0.1", "2.0.0", "2.1.0"):
                        self.publish("isdependency", ver)
                for ver in ("1.0.0", "1.0.1", "2.0.0"):
                        self.publish("isexactversiondependency", ver)

        def test_noop(self):
                """A noop run reports the available version and changes
                nothing."""

                self.__simple()
                before = self.snapshot_tree(self.lib_dir)

                summary = self.get_api().upgrade(["upgradepackage"],
                    noop=True)
                outcome = summary["upgradepackage"]
                self.assertFalse(outcome.success)
                self.assertTrue(outcome.warning)
                warnings = outcome.get_messages(pkgdefs.SEVERITY_WARNING)
                self.assertTrue("1.1.0 is available" in warnings[0])

                self.assertInstalled("upgradepackage", "1.0.0")
                self.assertEqual(self.snapshot_tree(self.lib_dir), before)
                self.assertFalse(os.path.exists(self.backup_dir))
                self.assertFalse(os.path.exists(self.holding_dir))
                self.assertEqual(summary.summary_message(),
                    "pkgup can upgrade 1/1 package(s).")
                self.assertEqual(self.hooks.calls, [])

        def test_noop_flags(self):
                """Other flags never make a noop run change anything."""

                self.__family()
                self.publish("fresh", "1.0")
                before = self.snapshot_tree(self.lib_dir)

                summary = self.get_api().upgrade(["all", "fresh"], noop=True,
                    force=True, allow_multiple_versions=True)
                self.assertEqual(self.snapshot_tree(self.lib_dir), before)
                self.assertEqual(summary.succeeded, 0)
                self.assertEqual(summary["fresh"].get_messages(),
                    ["Would have installed fresh v1.0."])

        def test_upgrade(self):
                self.__simple()

                summary = self.get_api().upgrade(["upgradepackage"])
                outcome = summary["upgradepackage"]
                self.assertTrue(outcome.success)
                self.assertFalse(outcome.inconclusive)
                self.assertFalse(outcome.warning)
                self.assertEqual(str(outcome.version), "1.1.0")

                self.assertInstalled("upgradepackage", "1.1.0",
                    dirname="upgradepackage")
                self.assertEqual(self.__pkg_file("upgradepackage"),
                    "upgradepackage 1.1.0\n")
                self.assertFalse(os.path.exists(os.path.join(self.backup_dir,
                    "upgradepackage")))
                self.assertEqual(summary.summary_message(),
                    "pkgup upgraded 1/1 package(s).")
                self.assertEqual(summary.exit_code(), pkgdefs.EXIT_OK)

        def test_exclusive_lock(self):
                """A file held exclusively by another process prevents the
                upgrade and leaves the previous version in place."""

                self.__simple()
                self.__lock(os.path.join(self.lib_dir, "upgradepackage",
                    "upgradepackage.txt"), fcntl.LOCK_EX)

                summary = self.get_api().upgrade(["upgradepackage"])
                outcome = summary["upgradepackage"]
                self.assertFalse(outcome.success)
                self.assertTrue(outcome.warning)
                self.assertEqual(str(outcome.version), "1.0.0")

                self.assertInstalled("upgradepackage", "1.0.0")
                self.assertEqual(self.__pkg_file("upgradepackage"),
                    "upgradepackage 1.0.0\n")
                self.assertTrue(os.path.isdir(os.path.join(self.backup_dir,
                    "upgradepackage")))
                self.assertEqual(summary.exit_code(), pkgdefs.EXIT_OOPS)

        def test_shared_lock(self):
                """A file that is held open with a shared lock is
                replaced."""

                self.__simple()
                self.__lock(os.path.join(self.lib_dir, "upgradepackage",
                    "upgradepackage.txt"), fcntl.LOCK_SH)

                summary = self.get_api().upgrade(["upgradepackage"])
                self.assertTrue(summary["upgradepackage"].success)
                self.assertEqual(self.__pkg_file("upgradepackage"),
                    "upgradepackage 1.1.0\n")

        def test_dependencies(self):
                """The dependencies of the new version are upgraded first."""

                self.__family()

                summary = self.get_api().upgrade(["hasdependency"])
                self.assertEqual(list(summary), ["isdependency",
                    "isexactversiondependency", "hasdependency"])
                self.assertInstalled("hasdependency", "2.1.0")
                self.assertInstalled("isdependency", "2.0.0")
                self.assertInstalled("isexactversiondependency", "2.0.0")
                self.assertEqual(summary.summary_message(),
                    "pkgup upgraded 3/3 package(s).")
                self.assertEqual(self.hooks.calls[:2], [
                    (pkgdefs.HOOK_PRE_UPGRADE, "isdependency", "2.0.0"),
                    (pkgdefs.HOOK_POST_UPGRADE, "isdependency", "2.0.0"),
                ])

        def test_dependency_range_cascade(self):
                """Upgrading a dependency past the range an installed parent
                accepts moves the parent to the lowest version that accepts
                it."""

                self.install("hasdependency", "1.0.0", deps={
                    "isdependency": "[1.0.0,2.0.0)",
                    "isexactversiondependency": "[1.0.0]",
                })
                self.install("isdependency", "1.0.0")
                self.install("isexactversiondependency", "1.0.0")
                self.publish("hasdependency", "1.0.1", deps={
                    "isdependency": "[1.0.1,3.0.0)",
                    "isexactversiondependency": "[1.0.1]",
                })
                self.publish("hasdependency", "2.1.0", deps={
                    "isdependency": "2.0.0",
                    "isexactversiondependency": "[2.0.0]",
                })
                for ver in ("1.0.0", "2.1.0"):
                        self.publish("isdependency", ver)
                for ver in ("1.0.0", "1.0.1", "2.0.0"):
                        self.publish("isexactversiondependency", ver)

                summary = self.get_api().upgrade(["isdependency"])
                self.assertInstalled("isdependency", "2.1.0")
                self.assertInstalled("hasdependency", "1.0.1")
                self.assertInstalled("isexactversiondependency", "1.0.1")
                self.assertEqual(summary.ratio(), (3, 3))

        def test_dependency_only(self):
                """Upgrading a dependency that an installed parent still
                accepts leaves the parent alone."""

                self.__family()

                summary = self.get_api().upgrade(["isdependency"])
                self.assertEqual(list(summary), ["isdependency"])
                self.assertInstalled("isdependency", "2.1.0")
                self.assertInstalled("hasdependency", "1.0.0")
                self.assertInstalled("isexactversiondependency", "1.0.0")
                self.assertEqual(summary.ratio(), (1, 1))

        def test_legacy_layout(self):
                """Only packages whose version changes move to the canonical
                layout."""

                self.__family(legacy=True)

                self.get_api().upgrade(["isdependency"])
                self.assertInstalled("isdependency", "2.1.0",
                    dirname="isdependency")
                self.assertFalse(os.path.exists(os.path.join(self.lib_dir,
                    "isdependency.1.0.0")))
                self.assertInstalled("hasdependency", "1.0.0",
                    dirname="hasdependency.1.0.0")
                self.assertEqual(self.__pkg_file("hasdependency.1.0.0"),
                    "hasdependency 1.0.0\n")

        def test_multiple_versions(self):
                self.__simple()

                summary = self.get_api().upgrade(["upgradepackage"],
                    allow_multiple_versions=True)
                self.assertTrue(summary["upgradepackage"].success)
                self.assertEqual(self.__pkg_file("upgradepackage"),
                    "upgradepackage 1.0.0\n")
                self.assertEqual(self.__pkg_file("upgradepackage.1.1.0"),
                    "upgradepackage 1.1.0\n")
                # The canonical directory remains the primary install.
                self.assertInstalled("upgradepackage", "1.0.0",
                    dirname="upgradepackage")

        def test_ignore_dependencies(self):
                self.__family()

                summary = self.get_api().upgrade(["hasdependency"],
                    ignore_dependencies=True)
                self.assertEqual(list(summary), ["hasdependency"])
                self.assertInstalled("hasdependency", "2.1.0")
                self.assertInstalled("isdependency", "1.0.0")
                self.assertInstalled("isexactversiondependency", "1.0.0")

        def test_unavailable_dependencies(self):
                """Nothing is upgraded when a dependency cannot be
                satisfied; the requested package reports the error."""

                self.install("hasdependency", "1.0.0", deps={
                    "isdependency": "1.0.0"})
                self.install("isdependency", "1.0.0")
                self.publish("hasdependency", "2.1.0", deps={
                    "isdependency": "3.0.0"})
                self.publish("isdependency", "2.0.0")
                before = self.snapshot_tree(self.lib_dir)

                summary = self.get_api().upgrade(["hasdependency"])
                self.assertEqual(self.snapshot_tree(self.lib_dir), before)
                self.assertEqual(list(summary), ["hasdependency"])
                outcome = summary["hasdependency"]
                self.assertTrue(outcome.failed)
                msgs = outcome.get_messages(pkgdefs.SEVERITY_ERROR)
                self.assertEqual(len(msgs), 1)
                self.assertTrue("isdependency" in msgs[0])
                self.assertEqual(summary.ratio(), (0, 1))
                self.assertEqual(summary.summary_message(),
                    "pkgup upgraded 0/1 package(s).")
                self.assertEqual(summary.exit_code(), pkgdefs.EXIT_OOPS)
                self.assertEqual(self.hooks.calls, [])

        def test_missing_dependency(self):
                """A dependency no source publishes fails only the package
                requiring it, and is not counted as attempted."""

                self.install("hasdependency", "1.0.0", deps={
                    "isdependency": "1.0.0"})
                self.install("isdependency", "1.0.0")
                self.publish("hasdependency", "2.1.0", deps={
                    "isdependency": "2.0.0",
                    "isexactversiondependency": "[2.0.0]",
                })
                self.publish("isdependency", "2.0.0")
                before = self.snapshot_tree(self.lib_dir)

                summary = self.get_api().upgrade(["hasdependency"])
                self.assertEqual(self.snapshot_tree(self.lib_dir), before)
                self.assertEqual(list(summary), ["hasdependency"])
                self.assertEqual(summary.not_found, [])
                msgs = summary["hasdependency"].get_messages(
                    pkgdefs.SEVERITY_ERROR)
                self.assertTrue("isexactversiondependency" in msgs[0])
                self.assertEqual(summary.ratio(), (0, 1))
                self.assertEqual(summary.summary_message(),
                    "pkgup upgraded 0/1 package(s).")
                self.assertEqual(summary.exit_code(), pkgdefs.EXIT_OOPS)

        def test_invalid_metadata(self):
                """Unusable metadata in the source fails only the package it
                describes."""

                self.__simple()
                self.install("other", "1.0")
                self.make_file(os.path.join(self.repo_root, "other", "2.0",
                    publisher.PKGINFO_FILE), '{"name": 3}')

                summary = self.get_api().upgrade(["upgradepackage",
                    "other"])
                self.assertTrue(summary["upgradepackage"].success)
                self.assertInstalled("upgradepackage", "1.1.0")
                outcome = summary["other"]
                self.assertTrue(outcome.failed)
                self.assertTrue("Invalid package metadata" in
                    outcome.get_messages(pkgdefs.SEVERITY_ERROR)[0])
                self.assertInstalled("other", "1.0")
                self.assertEqual(summary.ratio(), (1, 2))
                self.assertEqual(summary.exit_code(), pkgdefs.EXIT_PARTIAL)

        def test_corrupt_installed_manifest(self):
                """A damaged manifest of another installed package does not
                stop the run."""

                self.__simple()
                self.install("other", "1.0", legacy=True)
                self.make_file(os.path.join(self.lib_dir, "other.1.0",
                    ".pkgup-manifest"), "{garbage")

                summary = self.get_api().upgrade(["upgradepackage"])
                self.assertTrue(summary["upgradepackage"].success)
                self.assertInstalled("upgradepackage", "1.1.0")
                self.assertInstalled("other", "1.0")

        def test_unrelated_roots(self):
                """A root that cannot be resolved does not affect the others
                requested in the same run."""

                self.__simple()
                self.install("hasdependency", "1.0.0")
                self.publish("hasdependency", "2.1.0", deps={
                    "missing": "1.0"})

                summary = self.get_api().upgrade(["hasdependency",
                    "upgradepackage"])
                self.assertTrue(summary["upgradepackage"].success)
                self.assertTrue(summary["hasdependency"].failed)
                self.assertFalse("missing" in summary)
                msgs = summary["hasdependency"].get_messages(
                    pkgdefs.SEVERITY_ERROR)
                self.assertTrue("missing" in msgs[0])
                self.assertEqual(summary.ratio(), (1, 2))
                self.assertInstalled("hasdependency", "1.0.0")
                self.assertEqual(summary.exit_code(), pkgdefs.EXIT_PARTIAL)

        def test_not_found(self):
                summary = self.get_api().upgrade(["nosuchpackage"])
                self.assertEqual(summary.attempted, 0)
                self.assertEqual(list(summary), [])
                outcome = summary["nosuchpackage"]
                self.assertFalse(outcome.success)
                self.assertTrue("not found" in outcome.get_messages(
                    pkgdefs.SEVERITY_ERROR)[0])
                self.assertEqual(summary.summary_message(),
                    "pkgup upgraded 0/0 package(s).")
                self.assertEqual(summary.not_found_message(),
                    "pkgup upgraded 0/0 package(s). 1 package(s) not "
                    "found: nosuchpackage")
                self.assertEqual(summary.exit_code(), pkgdefs.EXIT_OOPS)

        def test_latest(self):
                """Without a newer version the package is left as it is."""

                self.install("upgradepackage", "1.1.0")
                self.publish("upgradepackage", "1.0.0")
                self.publish("upgradepackage", "1.1.0")
                before = self.snapshot_tree(self.lib_dir)

                summary = self.get_api().upgrade(["upgradepackage"])
                outcome = summary["upgradepackage"]
                self.assertTrue(outcome.inconclusive)
                self.assertFalse(outcome.success)
                self.assertEqual(self.snapshot_tree(self.lib_dir), before)
                self.assertEqual(summary.exit_code(), pkgdefs.EXIT_NOP)

        def test_force(self):
                self.install("upgradepackage", "1.1.0", files={
                    "upgradepackage.txt": "corrupted\n"})
                self.publish("upgradepackage", "1.1.0")

                summary = self.get_api().upgrade(["upgradepackage"],
                    force=True)
                self.assertTrue(summary["upgradepackage"].success)
                self.assertEqual(self.__pkg_file("upgradepackage"),
                    "upgradepackage 1.1.0\n")

        def test_user_files(self):
                self.__simple()
                self.make_misc_files({"upgradepackage/settings.xml": "<x/>"},
                    prefix=self.lib_dir)

                self.get_api().upgrade(["upgradepackage"])
                self.assertEqual(self.__pkg_file("upgradepackage",
                    "settings.xml"), "<x/>")

        def test_not_installed(self):
                self.publish("fresh", "1.0")

                summary = self.get_api().upgrade(["fresh"],
                    fail_on_not_installed=True)
                self.assertTrue(summary["fresh"].failed)
                self.assertEqual(summary.ratio(), (0, 1))
                self.assertEqual(self.installed_version("fresh"), None)

                summary = self.get_api().upgrade(["fresh"])
                self.assertTrue(summary["fresh"].success)
                self.assertEqual(summary.ratio(), (1, 1))
                self.assertInstalled("fresh", "1.0", dirname="fresh")

        def test_hook_failure(self):
                """A failing hook restores the previous version and keeps the
                rejected payload for inspection."""

                self.__simple()
                hooks = pkg5unittest.RecordingHookRunner(
                    [(pkgdefs.HOOK_POST_UPGRADE, "upgradepackage")])

                summary = self.get_api(hook_runner=hooks).upgrade(
                    ["upgradepackage"])
                outcome = summary["upgradepackage"]
                self.assertTrue(outcome.failed)
                self.assertTrue(outcome.get_messages(pkgdefs.SEVERITY_ERROR))
                self.assertInstalled("upgradepackage", "1.0.0")
                self.assertEqual(self.__pkg_file("upgradepackage"),
                    "upgradepackage 1.0.0\n")
                self.assertEqual(self.read_file(os.path.join(
                    self.holding_dir, "upgradepackage",
                    "upgradepackage.txt")), "upgradepackage 1.1.0\n")

        def test_hook_scripts(self):
                """Hook scripts shipped in the payload are run."""

                self.install("upgradepackage", "1.0.0")
                self.publish("upgradepackage", "1.1.0", files={
                    "upgradepackage.txt": "upgradepackage 1.1.0\n",
                    "hooks/post-upgrade": "exit 3\n",
                })

                a = api.UpgradeInterface(self.img_root, sources=[
                    publisher.DirectorySource(self.repo_root)])
                summary = a.upgrade(["upgradepackage"])
                self.assertTrue(summary["upgradepackage"].failed)
                self.assertInstalled("upgradepackage", "1.0.0")

        def test_all(self):
                self.__simple()
                self.install("other", "1.0")
                self.publish("other", "2.0")

                summary = self.get_api().upgrade(["all"])
                self.assertEqual(summary.ratio(), (2, 2))
                self.assertInstalled("other", "2.0")
                self.assertInstalled("upgradepackage", "1.1.0")

        def test_manifest_input(self):
                self.assertRaises(api_errors.ManifestInputRejected,
                    self.get_api().upgrade, ["packages.config"])


if __name__ == "__main__":
        unittest.main()

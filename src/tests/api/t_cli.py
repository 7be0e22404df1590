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

import sys
import unittest

import pkgup.client.cli as cli

from pkgup.client import pkgdefs


class TestCli(pkg5unittest.UpgradeTestCase):

        def setUp(self):
                pkg5unittest.UpgradeTestCase.setUp(self)
                self.__argv = sys.argv

        def tearDown(self):
                sys.argv = self.__argv
                pkg5unittest.UpgradeTestCase.tearDown(self)

        def pkgup(self, args, exit=0):
                """Runs the client with 'args' against the test install root
                and source and checks its exit status."""

                sys.argv = ["pkgup", "-R", self.img_root] + args
                try:
                        ret = cli.handle_errors(cli.main_func)
                except SystemExit as e:
                        ret = e.code
                self.assertEqual(ret, exit, self.get_debugbuf())
                return self.get_debugbuf()

        def test_upgrade(self):
                self.install("pkg", "1.0")
                self.publish("pkg", "2.0")

                out = self.pkgup(["upgrade", "-n", "-s", self.repo_root,
                    "pkg"])
                self.assertTrue("pkgup can upgrade 1/1 package(s)." in out)
                self.assertTrue("Version 2.0 is available" in out)
                self.assertInstalled("pkg", "1.0")

                out = self.pkgup(["upgrade", "--no-hooks", "-s",
                    self.repo_root, "pkg"])
                self.assertTrue("pkgup upgraded 1/1 package(s)." in out)
                self.assertInstalled("pkg", "2.0")

                self.pkgup(["upgrade", "-s", self.repo_root, "all"],
                    exit=pkgdefs.EXIT_NOP)

        def test_failures(self):
                out = self.pkgup(["upgrade", "-s", self.repo_root, "nosuch"],
                    exit=pkgdefs.EXIT_OOPS)
                self.assertTrue("1 package(s) not found: nosuch" in out)

                self.install("pkg", "1.0")
                self.publish("pkg", "2.0")
                out = self.pkgup(["upgrade", "-s", self.repo_root, "pkg",
                    "nosuch"], exit=pkgdefs.EXIT_PARTIAL)
                self.assertTrue("pkgup upgraded 1/1 package(s)." in out)

        def test_bad_usage(self):
                self.pkgup([], exit=pkgdefs.EXIT_BADOPT)
                self.pkgup(["frobnicate"], exit=pkgdefs.EXIT_BADOPT)
                self.pkgup(["upgrade"], exit=pkgdefs.EXIT_BADOPT)
                self.pkgup(["upgrade", "-x", "pkg"], exit=pkgdefs.EXIT_BADOPT)
                self.pkgup(["upgrade", "pkg@"], exit=pkgdefs.EXIT_BADOPT)
                out = self.pkgup(["upgrade", "packages.config"],
                    exit=pkgdefs.EXIT_BADOPT)
                self.assertTrue("packages.config" in out)

        def test_history(self):
                self.publish("pkg", "1.0")
                self.pkgup(["upgrade", "-s", self.repo_root, "pkg"])
                out = self.pkgup(["history"])
                self.assertTrue("Succeeded" in out)
                self.assertTrue("1/1" in out)


if __name__ == "__main__":
        unittest.main()

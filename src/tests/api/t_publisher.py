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

import os
import unittest

import simplejson as json

import pkgup.client.api_errors as apx
import pkgup.client.publisher as publisher
import pkgup.version as version


class TestDirectorySource(pkg5unittest.UpgradeTestCase):

        def test_metadata(self):
                self.publish("pkg", "1.0.0")
                self.publish("pkg", "1.10.0", deps={"dep": "[1.0,2.0)"})
                self.publish("pkg", "1.2.0", deps={"dep": "1.0"})

                src = publisher.DirectorySource(self.repo_root)
                self.assertEqual(src.name, "repo")
                md = src.get_metadata("pkg")
                self.assertEqual([str(v) for v in md.versions],
                    ["1.0.0", "1.2.0", "1.10.0"])
                self.assertEqual(str(md.newest), "1.10.0")
                self.assertEqual(md.dependencies(version.Version("1.0.0")),
                    ())
                dep = md.dependencies(version.Version("1.2.0"))[0]
                self.assertEqual(dep.name, "dep")
                self.assertEqual(dep.constraint,
                    version.RangeConstraint(minimum="1.0"))
                self.assertTrue(md.source(md.newest) is src)

                self.assertEqual(src.get_metadata("nosuch"), None)

        def test_ignored_entries(self):
                """Directories without a metadata file are not versions."""

                self.publish("pkg", "1.0")
                os.makedirs(os.path.join(self.repo_root, "pkg", "scratch"))
                self.make_misc_files({"pkg/README": "notes"},
                    prefix=self.repo_root)
                md = publisher.DirectorySource(self.repo_root).get_metadata(
                    "pkg")
                self.assertEqual([str(v) for v in md.versions], ["1.0"])

                os.makedirs(os.path.join(self.repo_root, "empty"))
                self.assertEqual(publisher.DirectorySource(
                    self.repo_root).get_metadata("empty"), None)

        def test_invalid_metadata(self):
                src = publisher.DirectorySource(self.repo_root)
                pkgdir = os.path.join(self.repo_root, "pkg", "1.0")
                path = os.path.join(pkgdir, publisher.PKGINFO_FILE)

                for content in (
                    "not json",
                    json.dumps({"name": "pkg"}),
                    json.dumps({"name": "pkg", "version": "1.0",
                        "dependencies": [{"version": "1.0"}]}),
                    json.dumps({"name": "pkg", "version": "one"}),
                    json.dumps({"name": "pkg", "version": "1.0",
                        "dependencies": [{"name": "d", "version": "[1.0"}]}),
                ):
                        self.make_file(path, content)
                        src = publisher.DirectorySource(self.repo_root)
                        self.assertRaises(apx.InvalidMetadataError,
                            src.get_metadata, "pkg")

        def test_invalid_location(self):
                self.make_file(os.path.join(self.repo_root, "pkg", "1.0",
                    publisher.PKGINFO_FILE), json.dumps({"name": "pkg",
                    "version": "1.0", "dependencies": [{"name": 3}]}))
                src = publisher.DirectorySource(self.repo_root)
                try:
                        src.get_metadata("pkg")
                except apx.InvalidMetadataError as e:
                        self.assertEqual(e.verbose_info,
                            ["at: dependencies/0/name"])
                else:
                        self.fail("invalid metadata accepted")

        def test_fetch_payload(self):
                self.publish("pkg", "1.0", files={
                    "bin/tool": "tool\n",
                    "pkg.txt": "pkg 1.0\n",
                })
                src = publisher.DirectorySource(self.repo_root)
                dest = os.path.join(self.test_root, "staged")
                src.fetch_payload("pkg", version.Version("1.0"), dest)
                self.assertEqual(self.read_file(os.path.join(dest, "bin",
                    "tool")), "tool\n")
                self.assertEqual(self.read_file(os.path.join(dest,
                    "pkg.txt")), "pkg 1.0\n")

                # The directory may spell the version differently.
                dest = os.path.join(self.test_root, "staged2")
                src.fetch_payload("pkg", version.Version("1.0.0"), dest)
                self.assertTrue(os.path.isfile(os.path.join(dest,
                    "pkg.txt")))

                self.assertRaises(apx.PayloadUnavailable, src.fetch_payload,
                    "pkg", version.Version("2.0"),
                    os.path.join(self.test_root, "staged3"))


class TestSourceCatalog(pkg5unittest.UpgradeTestCase):

        def test_merge(self):
                """Versions from every source are merged; the first source
                to publish a version provides it."""

                other = os.path.join(self.test_root, "other")
                self.publish("pkg", "1.0", files={"a": "first\n"})
                vdir = os.path.join(other, "pkg", "1.0")
                self.make_file(os.path.join(vdir, publisher.PKGINFO_FILE),
                    json.dumps({"name": "pkg", "version": "1.0"}))
                self.make_file(os.path.join(vdir, publisher.PAYLOAD_DIR, "a"),
                    "second\n")
                vdir = os.path.join(other, "pkg", "2.0")
                self.make_file(os.path.join(vdir, publisher.PKGINFO_FILE),
                    json.dumps({"name": "pkg", "version": "2.0"}))
                self.make_file(os.path.join(vdir, publisher.PAYLOAD_DIR, "a"),
                    "newer\n")

                first = publisher.DirectorySource(self.repo_root)
                second = publisher.DirectorySource(other)
                cat = publisher.SourceCatalog([first, second])
                md = cat.get_metadata("pkg")
                self.assertEqual([str(v) for v in md.versions],
                    ["1.0", "2.0"])
                self.assertTrue(md.source(version.Version("1.0")) is first)
                self.assertTrue(md.source(version.Version("2.0")) is second)
                self.assertEqual(cat.get_metadata("nosuch"), None)

                dest = os.path.join(self.test_root, "staged")
                cat.fetch_payload("pkg", version.Version("1.0"), dest)
                self.assertEqual(self.read_file(os.path.join(dest, "a")),
                    "first\n")
                dest = os.path.join(self.test_root, "staged2")
                cat.fetch_payload("pkg", version.Version("2.0"), dest)
                self.assertEqual(self.read_file(os.path.join(dest, "a")),
                    "newer\n")

                self.assertRaises(apx.PayloadUnavailable, cat.fetch_payload,
                    "nosuch", version.Version("1.0"),
                    os.path.join(self.test_root, "staged3"))


class TestPackageMetadata(pkg5unittest.Pkg5TestCase):

        def test_add_version(self):
                md = publisher.PackageMetadata("pkg")
                self.assertEqual(md.newest, None)
                self.assertTrue(md.add_version("1.0", source="a"))
                self.assertFalse(md.add_version("1.0.0", source="b"))
                self.assertEqual(md.source(version.Version("1.0")), "a")
                md.add_version("0.9")
                self.assertEqual(str(md), "pkg (0.9, 1.0)")
                self.assertTrue(md.has_version(version.Version("0.9")))
                self.assertFalse(md.has_version(version.Version("2.0")))


if __name__ == "__main__":
        unittest.main()

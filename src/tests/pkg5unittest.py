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

#
# Define the basic classes that all test cases are inherited from.
# The currently defined test case classes are:
#
# Pkg5TestCase
# UpgradeTestCase
#

import logging
import os
import shutil
import sys
import tempfile
import unittest

import simplejson as json

import pkgup.client.actuator as actuator
import pkgup.client.api as api
import pkgup.client.image as image
import pkgup.client.publisher as publisher
import pkgup.version as version

# Set to True to see the debug output of a test on stderr.
g_debug_output = bool(os.environ.get("PKGUP_TEST_DEBUG"))


class DebugLogHandler(logging.Handler):
        """This class is a special log handler to redirect logger output to
        the test case class' debug() method.
        """

        def __init__(self, test_case):
                self.test_case = test_case
                logging.Handler.__init__(self)

        def emit(self, record):
                self.test_case.debug(record.getMessage())

def setup_logging(test_case):
        # Ensure logger messages output by unit tests are redirected
        # to debug output so they are not shown by default.
        from pkgup.client import global_settings
        log_handler = DebugLogHandler(test_case)
        global_settings.info_log_handler = log_handler
        global_settings.error_log_handler = log_handler


class Pkg5TestCase(unittest.TestCase):

        # Needed for compatibility
        failureException = AssertionError

        def __init__(self, methodName="runTest"):
                super(Pkg5TestCase, self).__init__(methodName)
                self.__test_root = None
                self.__debug_buf = ""

        # Uses property() to implements test_root as a read-only attribute.
        test_root = property(fget=lambda self: self.__test_root)

        def debug(self, s):
                s = str(s)
                for x in s.splitlines():
                        if g_debug_output:
                                print("# {0}".format(x), file=sys.stderr)
                        self.__debug_buf += x + "\n"

        def get_debugbuf(self):
                return self.__debug_buf

        def setUp(self):
                self.__test_root = tempfile.mkdtemp(prefix="pkgup.test.")
                self.__debug_buf = ""
                self.__pwd = os.getcwd()
                setup_logging(self)

        def tearDown(self):
                from pkgup.client import global_settings
                global_settings.reset_logging()
                try:
                        os.chdir(self.__pwd)
                except OSError:
                        # working directory of last resort.
                        os.chdir(tempfile.gettempdir())

                #
                # Tests may leave read-only directories behind; make them
                # writable again so that they can be removed.
                #
                if self.__test_root is not None and \
                    os.path.exists(self.__test_root):
                        for dirpath, dirnames, filenames in \
                            os.walk(self.__test_root):
                                os.chmod(dirpath, 0o755)
                        shutil.rmtree(self.__test_root)
                unittest.TestCase.tearDown(self)

        def make_file(self, path, content, mode=0o644):
                if not os.path.exists(os.path.dirname(path)):
                        os.makedirs(os.path.dirname(path), 0o777)
                self.debug("creating {0}".format(path))
                with open(path, "w", encoding="utf-8") as fh:
                        fh.write(content)
                os.chmod(path, mode)

        def make_misc_files(self, files, prefix=None, mode=0o644):
                """ Make miscellaneous text files.  Files can be a
                single relative pathname, a list of relative pathnames,
                or a hash mapping relative pathnames to specific contents.
                If file contents are not specified, the pathname of the
                file is placed into the file as default content. """

                outpaths = []
                #
                # If files is a string, make it a list.  Then, if it is
                # a list, simply turn it into a dict where each file's
                # contents is its own name, so that we get some uniqueness.
                #
                if isinstance(files, str):
                        files = [files]

                if isinstance(files, list):
                        nfiles = {}
                        for f in files:
                                nfiles[f] = f
                        files = nfiles

                if prefix is None:
                        prefix = self.test_root
                elif not os.path.isabs(prefix):
                        prefix = os.path.join(self.test_root, prefix)

                # Ensure output paths are returned in consistent order.
                for f in sorted(files):
                        content = files[f]
                        assert not f.startswith("/"), \
                            ("{0}: misc file paths must be relative!".format(f))
                        path = os.path.join(prefix, f)
                        self.make_file(path, content, mode)
                        outpaths.append(path)
                return outpaths

        def read_file(self, path):
                with open(path, "r", encoding="utf-8") as fh:
                        return fh.read()

        def snapshot_tree(self, root):
                """Returns a dictionary mapping every file below 'root' to its
                content, used to compare trees before and after a run."""

                tree = {}
                for dirpath, dirnames, filenames in os.walk(root):
                        for f in filenames:
                                path = os.path.join(dirpath, f)
                                with open(path, "rb") as fh:
                                        tree[os.path.relpath(path, root)] = \
                                            fh.read()
                        for d in dirnames:
                                path = os.path.join(dirpath, d)
                                tree[os.path.relpath(path, root) + "/"] = None
                return tree


class RecordingHookRunner(actuator.HookRunner):
        """A hook runner that records the hooks it is asked to run and fails
        those listed in 'failures', a set of (phase, name) tuples."""

        def __init__(self, failures=()):
                self.failures = set(failures)
                self.calls = []

        def run(self, phase, name, version, path):
                self.calls.append((phase, name, str(version)))
                if (phase, name) in self.failures:
                        return actuator.HookResult(False,
                            "{0} {1} failed".format(phase, name))
                return actuator.HookResult(True, "")


class UpgradeTestCase(Pkg5TestCase):
        """A test case with an empty install root below 'img_root' and an
        empty package source below 'repo_root'."""

        def setUp(self):
                Pkg5TestCase.setUp(self)
                self.img_root = os.path.join(self.test_root, "image")
                self.repo_root = os.path.join(self.test_root, "repo")
                self.lib_dir = os.path.join(self.img_root, "lib")
                self.backup_dir = os.path.join(self.img_root, "lib-bkp")
                self.holding_dir = os.path.join(self.img_root, "lib-bad")
                os.makedirs(self.lib_dir)
                os.makedirs(self.repo_root)
                self.hooks = RecordingHookRunner()

        def publish(self, name, ver, deps=None, files=None):
                """Publishes 'name' at 'ver' to the package source.  'deps' is
                a dictionary of dependency names to constraint strings and
                'files' a dictionary of payload paths to contents."""

                vdir = os.path.join(self.repo_root, name, ver)
                info = {"name": name, "version": ver, "dependencies": [
                    {"name": n, "version": c}
                    for n, c in sorted((deps or {}).items())
                ]}
                self.make_file(os.path.join(vdir, publisher.PKGINFO_FILE),
                    json.dumps(info))
                if files is None:
                        files = {"{0}.txt".format(name): "{0} {1}\n".format(
                            name, ver)}
                self.make_misc_files(files,
                    prefix=os.path.join(vdir, publisher.PAYLOAD_DIR))
                return vdir

        def install(self, name, ver, deps=None, files=None, legacy=False,
            record=True):
                """Installs 'name' at 'ver' directly into the library
                directory, as the canonical install unless 'legacy' is True.
                If 'record' is False, no manifest is written."""

                if legacy:
                        dirname = "{0}.{1}".format(name, ver)
                else:
                        dirname = name
                path = os.path.join(self.lib_dir, dirname)
                if files is None:
                        files = {"{0}.txt".format(name): "{0} {1}\n".format(
                            name, ver)}
                os.makedirs(path)
                self.make_misc_files(files, prefix=path)
                if record:
                        dependencies = [
                            (n, version.parse_constraint(c))
                            for n, c in sorted((deps or {}).items())
                        ]
                        image.Image(self.img_root).write_manifest(path, name,
                            version.Version(ver), dependencies=dependencies)
                return path

        def get_api(self, hook_runner=None):
                if hook_runner is None:
                        hook_runner = self.hooks
                return api.UpgradeInterface(self.img_root,
                    sources=[publisher.DirectorySource(self.repo_root)],
                    hook_runner=hook_runner)

        def installed_version(self, name):
                pkg = image.Image(self.img_root).get_installed(name)
                if pkg is None:
                        return None
                return str(pkg.version)

        def assertInstalled(self, name, ver, dirname=None):
                self.assertEqual(self.installed_version(name), ver)
                if dirname is not None:
                        pkg = image.Image(self.img_root).get_installed(name)
                        self.assertEqual(os.path.basename(pkg.path), dirname)

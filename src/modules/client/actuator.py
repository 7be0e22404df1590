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

"""Execution of the hooks a package payload may carry.

A payload may contain executable scripts named after the hook phases in its
"hooks" directory, e.g. hooks/pre-upgrade and hooks/post-upgrade.  The hook
runner executes them and reports success or failure together with the
captured output; it never raises for a failing hook."""

import locale
import os
import subprocess
import sys
from collections import namedtuple

from pkgup.client import global_settings

logger = global_settings.logger

# name of the payload directory holding the hook scripts
HOOKS_DIR = "hooks"

HookResult = namedtuple("HookResult", ["success", "output"])


class HookRunner(object):
    """The interface provided by hook runners."""

    def run(self, phase, name, version, path):
        """Runs the 'phase' hook of package 'name' at 'version' whose
        files are at 'path'.  Returns a HookResult."""
        raise NotImplementedError


class NullHookRunner(HookRunner):
    """A hook runner that runs nothing and always succeeds."""

    def run(self, phase, name, version, path):
        return HookResult(True, "")


class ScriptHookRunner(HookRunner):
    """Runs hooks/<phase> found in the package files as a separate
    process.  A script without the execute bit set is run by /bin/sh.
    The package name, version, and directory are exported in the
    environment as PKGUP_PACKAGE_NAME, PKGUP_PACKAGE_VERSION and
    PKGUP_PACKAGE_DIR."""

    def __init__(self, env=None):
        self.env = env

    def run(self, phase, name, version, path):
        script = os.path.join(path, HOOKS_DIR, phase)
        if not os.path.isfile(script):
            return HookResult(True, "")

        if os.access(script, os.X_OK):
            args = [script]
        else:
            args = ["/bin/sh", script]

        env = dict(self.env if self.env is not None else os.environ)
        env["PKGUP_PACKAGE_NAME"] = name
        env["PKGUP_PACKAGE_VERSION"] = str(version)
        env["PKGUP_PACKAGE_DIR"] = path
        env["PKGUP_HOOK_PHASE"] = phase

        # returned values will be in the user's locale
        encoding = locale.getpreferredencoding(do_setlocale=False)
        logger.debug("running {0} hook of {1}: {2}".format(phase, name,
            " ".join(args)))
        try:
            proc = subprocess.Popen(args, stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT, cwd=path, env=env)
            out = proc.communicate()[0]
        except OSError as e:
            return HookResult(False, _("cannot execute {0}: {1}").format(
                script, e))

        output = out.decode(encoding, "replace").strip()
        if proc.returncode != 0:
            if output:
                output += "\n"
            output += _("{0} exited with status {1:d}").format(
                os.path.basename(script), proc.returncode)
            return HookResult(False, output)
        return HookResult(True, output)


def get_default_hook_runner(enabled=True):
    """Returns the hook runner used when the caller provides none."""

    if not enabled:
        return NullHookRunner()
    if sys.platform.startswith("win"):
        logger.debug("hook scripts are not supported on this platform")
        return NullHookRunner()
    return ScriptHookRunner()

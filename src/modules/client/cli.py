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

"""The pkgup command line client."""

import errno
import getopt
import gettext
import os
import sys

import pkgup.client.actuator as actuator
import pkgup.client.api as api
import pkgup.client.api_errors as api_errors
import pkgup.client.history as history
import pkgup.client.publisher as publisher

from pkgup.client import global_settings
from pkgup.client.pkgdefs import *

logger = global_settings.logger

_api_inst = None

def error(text, cmd=None):
        """Emit an error message prefixed by the command name """

        if not isinstance(text, str):
                # Assume it's an object that can be stringified.
                text = str(text)

        # If the message starts with whitespace, assume that it should come
        # *before* the command-name prefix.
        text_nows = text.lstrip()
        ws = text[:len(text) - len(text_nows)]

        if cmd:
                text_nows = "{0}: {1}".format(cmd, text_nows)
                pkg_cmd = "pkgup "
        else:
                pkg_cmd = "pkgup: "

        logger.error(ws + pkg_cmd + text_nows)

def usage(usage_error=None, cmd=None, retcode=EXIT_BADOPT):
        """Emit a usage message and optionally prefix it with a more
            specific error message.  Causes program to exit. """

        if usage_error:
                error(usage_error, cmd=cmd)

        logger.error(_("""\
Usage:
        pkgup [-R dir] upgrade [-fnv] [-s source ...] [--ignore-dependencies]
            [--allow-multiple-versions] [--fail-on-not-installed]
            [--no-hooks] (pkg_spec ... | all)
        pkgup [-R dir] history

Options:
        -R dir          install root (default: current directory)

Environment:
        PKGUP_ROOT
        PKGUP_DEBUG"""))
        sys.exit(retcode)

def upgrade(root, pargs):
        """Upgrade the named packages and print the run summary."""

        global _api_inst

        opts, pargs = getopt.getopt(pargs, "fns:v", ["ignore-dependencies",
            "allow-multiple-versions", "fail-on-not-installed", "no-hooks"])

        kwargs = {}
        sources = []
        hook_runner = None
        for opt, arg in opts:
                if opt == "-f":
                        kwargs["force"] = True
                elif opt == "-n":
                        kwargs["noop"] = True
                elif opt == "-s":
                        sources.append(publisher.DirectorySource(arg))
                elif opt == "-v":
                        global_settings.verbose = True
                elif opt == "--ignore-dependencies":
                        kwargs["ignore_dependencies"] = True
                elif opt == "--allow-multiple-versions":
                        kwargs["allow_multiple_versions"] = True
                elif opt == "--fail-on-not-installed":
                        kwargs["fail_on_not_installed"] = True
                elif opt == "--no-hooks":
                        hook_runner = actuator.NullHookRunner()

        if not pargs:
                usage(_("at least one package must be specified"),
                    cmd="upgrade")

        _api_inst = api.UpgradeInterface(root, sources=sources or None,
            hook_runner=hook_runner)
        summary = _api_inst.upgrade(pargs, **kwargs)

        for name, outcome in summary.items():
                logger.debug("{0}".format(outcome))
        logger.warning(summary.summary_message())
        nf = summary.not_found_message()
        if nf:
                logger.warning(nf)

        warned = summary.warnings
        if warned:
                logger.warning(_("Warnings:"))
                for outcome in warned:
                        for text in outcome.get_messages(SEVERITY_WARNING):
                                logger.warning(" - {0}".format(text))

        failed = summary.failed
        if failed:
                logger.error(_("Failures:"))
                for outcome in failed:
                        for text in outcome.get_messages(SEVERITY_ERROR):
                                logger.error(" - {0}".format(text))
        return summary.exit_code()

def list_history(root, pargs):
        """Display the operations recorded for the install root."""

        if pargs:
                usage(_("no arguments expected"), cmd="history")

        hist = history.History(root)
        fmt = "{0:20} {1:10} {2:10} {3}"
        logger.info(fmt.format(_("START"), _("OPERATION"), _("OUTCOME"),
            _("PACKAGES")))
        for entry in hist.entries():
                summary = entry.get("summary") or {}
                done = ""
                if summary:
                        done = "{0:d}/{1:d}".format(summary["succeeded"],
                            summary["attempted"])
                logger.info(fmt.format(entry["start_time"],
                    entry["operation"], entry["result"][0], done))
        return EXIT_OK

cmds = {
    "upgrade": upgrade,
    "history": list_history,
}

def main_func():
        global_settings.client_name = "pkgup"

        try:
                opts, pargs = getopt.getopt(sys.argv[1:], "R:?", ["help"])
        except getopt.GetoptError as e:
                usage(_("illegal global option -- {0}").format(e.opt))

        root = os.environ.get("PKGUP_ROOT", os.getcwd())
        for opt, arg in opts:
                if opt == "-R":
                        root = arg
                elif opt in ("-?", "--help"):
                        usage(retcode=EXIT_OK)

        if not pargs:
                usage(_("no subcommand specified"))

        subcommand = pargs.pop(0)
        func = cmds.get(subcommand)
        if func is None:
                usage(_("unknown subcommand '{0}'").format(subcommand))

        global_settings.client_args = [subcommand] + pargs
        try:
                return func(root, pargs)
        except getopt.GetoptError as e:
                usage(_("illegal option -- {0}").format(e.opt),
                    cmd=subcommand)

def handle_errors(func, *args, **kwargs):
        try:
                __ret = func(*args, **kwargs)
        except SystemExit as __e:
                raise __e
        except KeyboardInterrupt:
                __ret = EXIT_OOPS
        except api_errors.ManifestInputRejected as __e:
                usage(__e, cmd="upgrade")
        except api_errors.InvalidPackageSpec as __e:
                usage(__e, cmd="upgrade")
        except (api_errors.HistoryLoadException,
            api_errors.HistoryStoreException) as __e:
                error(_("An error was encountered while attempting to access "
                    "information about client operations."))
                error(__e)
                __ret = EXIT_OOPS
        except api_errors.ApiException as __e:
                error(__e)
                for info in __e.verbose_info:
                        logger.error("    {0}".format(info))
                __ret = EXIT_OOPS
        except EnvironmentError as __e:
                if __e.errno != errno.EPIPE:
                        error(__e)
                __ret = EXIT_OOPS
        return __ret

def main():
        gettext.install("pkgup", "/usr/share/locale")
        return handle_errors(main_func)

if __name__ == "__main__":
        sys.exit(main())

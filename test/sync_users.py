#
# Copyright 2023 Ghent University
#
# This file is part of vsc-slurm-users,
# originally created by the HPC team of Ghent University (http://ugent.be/hpc/en),
# with support of Ghent University (http://ugent.be/hpc),
# the Flemish Supercomputer Centre (VSC) (https://www.vscentrum.be),
# the Flemish Research Foundation (FWO) (http://www.fwo.be/en)
# and the Department of Economy, Science and Innovation (EWI) (http://www.ewi-vlaanderen.be/en).
#
# All rights reserved.
#
"""
Tests for the sync_slurm_users script
"""
import io
import logging
import os
import shlex
import shutil
import tempfile
from collections import namedtuple

from mock import patch
from vsc.install.testing import TestCase

from vsc.slurmusers.identity import IdentityException, IdentitySource
from vsc.slurmusers.report import REPORT_LOGGER_NAME, setup_report_output
from vsc.slurmusers.sacctmgr import SacctAssocFields, SacctMgrException

from sync_slurm_users import main, sync_slurm_users

Options = namedtuple("Options", ["min_uid", "fairshare", "grptres", "grptresrunmins", "sacctmgr", "getent", "policy"])


def assoc_line(account, user="", **columns):
    values = dict(Cluster="mycluster", Account=account, User=user)
    values.update(columns)
    return "|".join([values.get(f, "") for f in SacctAssocFields])


class FixtureIdentitySource(IdentitySource):
    def __init__(self, group_lines, passwd_lines):
        self._group_lines = group_lines
        self._passwd_lines = passwd_lines

    def group_lines(self):
        return self._group_lines

    def passwd_lines(self):
        return self._passwd_lines


class FixtureStateSource(object):
    def __init__(self, lines):
        self.lines = lines

    def association_lines(self):
        return self.lines


IDENTITY = FixtureIdentitySource(
    ["root:x:0:", "labA:x:2001:", "labb:x:2002:"],
    [
        "root:x:0:0:root:/root:/bin/bash",
        "alice:x:2001:2001:Alice:/home/alice:/bin/bash",
        "bob:x:2002:2001:Bob:/home/bob:/bin/bash",
        "carl:x:2003:2002:Carl:/home/carl:/bin/bash",
        "svc:x:2004:2002:Service:/var/svc:/sbin/nologin",
    ],
)

STATE = FixtureStateSource([
    "|".join(SacctAssocFields),
    assoc_line("root", Share="1"),
    assoc_line("root", user="root", Share="1"),
    assoc_line("laba", Share="1"),
    assoc_line("labb", Share="1"),
    assoc_line("oldlab", Share="1"),
    assoc_line("laba", user="alice", Share="2", GrpTRES="cpu=1500"),
    assoc_line("labb", user="carl", Share="2", GrpTRES="cpu=1500", QOS="normal"),
    assoc_line("oldlab", user="svc", Share="1"),
])


class SyncSlurmUsersTest(TestCase):

    def setUp(self):
        super(SyncSlurmUsersTest, self).setUp()
        self.tmpdir = tempfile.mkdtemp()
        self.policy = os.path.join(self.tmpdir, "sync_slurm_users.conf")
        with open(self.policy, "w") as fh:
            fh.write("\n".join([
                "# limits",
                "DEFAULT:GrpTRES:CPU=1500",
                "labb:QOS:normal,long",
                "",
            ]))
        self.options = Options(
            min_uid=1002,
            fairshare="2",
            grptres=None,
            grptresrunmins=None,
            sacctmgr="sacctmgr",
            getent="getent",
            policy=self.policy,
        )

    def tearDown(self):
        shutil.rmtree(self.tmpdir)
        super(SyncSlurmUsersTest, self).tearDown()

    @patch('vsc.slurmusers.identity.os.path.isdir', side_effect=lambda path: path.startswith("/home/"))
    def test_sync_slurm_users(self, misdir):
        commands = sync_slurm_users(IDENTITY, STATE, self.options)

        self.assertEqual([tuple(x) for x in commands], [tuple(x) for x in [
            shlex.split("sacctmgr -i create user name=bob defaultaccount=laba fairshare=2 GrpTRES=cpu=1500"),
            shlex.split("sacctmgr -i modify user where name=carl set QOS=NORMAL,LONG"),
            shlex.split("sacctmgr -i delete user svc"),
        ]])

    @patch('vsc.slurmusers.identity.os.path.isdir', side_effect=lambda path: path.startswith("/home/"))
    def test_sync_slurm_users_no_policy(self, misdir):
        options = self.options._replace(policy=os.path.join(self.tmpdir, "nosuchfile"), fairshare="parent")

        with self.assertLogs(REPORT_LOGGER_NAME, level=logging.WARNING):
            commands = sync_slurm_users(IDENTITY, STATE, options)

        self.assertEqual([tuple(x) for x in commands], [tuple(x) for x in [
            shlex.split("sacctmgr -i modify user where name=alice set fairshare=parent"),
            shlex.split("sacctmgr -i create user name=bob defaultaccount=laba fairshare=parent"),
            shlex.split("sacctmgr -i modify user where name=carl set fairshare=parent"),
            shlex.split("sacctmgr -i delete user svc"),
        ]])

    def test_report_output(self):
        """Diagnostics are printed with a ### prefix."""
        stream = io.StringIO()
        handler = setup_report_output(stream)
        reporter = logging.getLogger(REPORT_LOGGER_NAME)
        try:
            reporter.info("something to know")
            reporter.warning("something to check")
            reporter.error("something wrong")
        finally:
            reporter.removeHandler(handler)
            reporter.propagate = True

        self.assertEqual(stream.getvalue().splitlines(), [
            "### NOTICE: something to know",
            "### WARNING: something to check",
            "### ERROR: something wrong",
        ])

    @patch('sync_slurm_users.setup_report_output')
    @patch('sync_slurm_users.SacctMgrStateSource')
    @patch('sync_slurm_users.GetentIdentitySource')
    @patch('sync_slurm_users.ExtendedSimpleOption')
    def test_main(self, mopts, mgetent, mstate, msetup):
        mopts.return_value.options = self.options
        mgetent.return_value = IDENTITY
        mstate.return_value = STATE

        self.mock_stdout(True)
        with patch('vsc.slurmusers.identity.os.path.isdir', return_value=True):
            main()
        stdout = self.get_stdout()
        self.mock_stdout(False)

        self.assertEqual(stdout.splitlines(), [
            "sacctmgr -i create user name=bob defaultaccount=laba fairshare=2 GrpTRES=cpu=1500",
            "sacctmgr -i modify user where name=carl set QOS=NORMAL,LONG",
            "sacctmgr -i delete user svc",
        ])
        mgetent.assert_called_once_with(getent="getent")
        mstate.assert_called_once_with(sacctmgr="sacctmgr")
        self.assertEqual(mopts.return_value.epilogue.mock_calls[0][1], ("Users synced to slurm", {"commands": 3}))
        self.assertEqual(mopts.return_value.critical.mock_calls, [])

    @patch('sync_slurm_users.setup_report_output')
    @patch('sync_slurm_users.SacctMgrStateSource')
    @patch('sync_slurm_users.GetentIdentitySource')
    @patch('sync_slurm_users.ExtendedSimpleOption')
    def test_main_source_failure(self, mopts, mgetent, mstate, msetup):
        """No commands at all are printed when one of the sources fails."""
        mopts.return_value.options = self.options
        mgetent.return_value.group_lines.side_effect = IdentityException("Cannot run getent group")
        mstate.return_value = STATE

        self.mock_stdout(True)
        self.assertRaises(SystemExit, main)
        stdout = self.get_stdout()
        self.mock_stdout(False)

        self.assertEqual(stdout, "")
        mopts.return_value.critical.assert_called_once_with("Script failed in a horrible way")

    @patch('sync_slurm_users.setup_report_output')
    @patch('sync_slurm_users.SacctMgrStateSource')
    @patch('sync_slurm_users.GetentIdentitySource')
    @patch('sync_slurm_users.ExtendedSimpleOption')
    def test_main_sacctmgr_failure(self, mopts, mgetent, mstate, msetup):
        mopts.return_value.options = self.options
        mgetent.return_value = IDENTITY
        mstate.return_value.association_lines.side_effect = SacctMgrException("Cannot run sacctmgr")

        self.mock_stdout(True)
        self.assertRaises(SystemExit, main)
        stdout = self.get_stdout()
        self.mock_stdout(False)

        self.assertEqual(stdout, "")
        mopts.return_value.critical.assert_called_once_with("Script failed in a horrible way")

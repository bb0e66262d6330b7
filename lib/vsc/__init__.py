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
Allow other packages to extend this namespace, zip safe setuptools style
"""
from pkgutil import extend_path

__path__ = extend_path(__path__, __name__)

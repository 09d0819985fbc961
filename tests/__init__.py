# -*- coding: utf-8 -*-
"""pqstream test suite."""

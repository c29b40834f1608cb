# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""Allow running as: python -m ldapki"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())

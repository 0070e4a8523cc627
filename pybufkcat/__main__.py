# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Allow ``python -m pybufkcat``."""

from .cli import main

main()

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# This file is supposed to provide the 'fuse' symbol.
# pylint: disable=unused-import

import logging

logger = logging.getLogger(__name__)

try:
    import mfusepy as fuse  # type: ignore
except (ImportError, OSError) as importException:
    logger.info("Failed to load mfusepy. Will try to load system fusepy. Exception was: %s", importException)
    try:
        import fuse  # type: ignore
    except (ImportError, OSError) as fuseException:
        try:
            import fusepy as fuse  # type: ignore
        except (ImportError, OSError) as fusepyException:
            logger.error("Did not find any FUSE installation. Please install it, e.g., with:")
            logger.error(" - apt install libfuse2")
            logger.error(" - yum install fuse fuse-libs")
            raise ImportError(
                f"Failed to load FUSE bindings. Exception for fuse: {fuseException}, "
                f"exception for fusepy: {fusepyException}"
            ) from fusepyException

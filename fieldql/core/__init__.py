"""Storage-independent field algebra: kinds, shapes, obligations, defaults and relations."""

"""
Packaged configuration files for immirag.

- retrieval_policy.yaml: thresholds, oversampling, expansion and timeouts
- environments.yaml: test/prod graph and collection names, policy overrides
"""

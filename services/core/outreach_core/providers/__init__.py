"""Platform-specific page descriptors.

- LinkedIn: selectors, URL builders and profile field candidates
"""

"""
Attachment services: storage disks, identifier generation, the attachment
registry, the deferred upload protocol, orphan cleanup and access gates.
"""

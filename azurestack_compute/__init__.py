"""
Azure Stack Hub Compute resources for a Terraform-style provider.

Resource and data source handlers for availability sets, managed disks,
images, virtual machines, scale sets and their extensions, together with the
resource ID parsers, the schema layer and a small plan/apply engine.
"""

__version__ = "0.1.0"

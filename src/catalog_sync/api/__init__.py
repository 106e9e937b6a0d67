"""HTTP trigger surface for pipeline steps."""

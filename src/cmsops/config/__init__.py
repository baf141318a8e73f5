"""Site configuration stored in .cmsops/config.yaml."""

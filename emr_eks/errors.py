class ConfigurationError(ValueError):
    """Raised when CDK context holds a value the stacks cannot be built from."""


class NetworkNotFoundError(ConfigurationError):
    """Raised when the requested VPC cannot be resolved."""


class NodeGroupSizeError(ConfigurationError):
    """Raised when node group bounds do not satisfy min <= desired <= max."""

    def __init__(self, min_size, desired_size, max_size):
        super().__init__(
            f'Invalid node group size: min={min_size}, desired={desired_size}, '
            f'max={max_size} (expected 0 <= min <= desired <= max)')
        self.min_size = min_size
        self.desired_size = desired_size
        self.max_size = max_size

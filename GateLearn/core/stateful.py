import json


class Stateful:
    def state_dict(self):
        return {}

    def load_state_dict(self, state):
        pass

    def get_config(self):
        return {}

    @classmethod
    def from_config(cls, cfg):
        return cls(**cfg)

    def save(self, path):
        """Write `state_dict()` to `path` as JSON."""
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.state_dict(), f, indent=2)

    def load(self, path):
        """Read a JSON document written by `save` and load it."""
        with open(path, "r", encoding="utf-8") as f:
            self.load_state_dict(json.load(f))
        return self

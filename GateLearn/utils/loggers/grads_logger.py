import os
import csv
import json
import GateLearn.core.backend.backend as backend

xp = backend.xp


class GradsLogger:
    """
    Gradient statistics logger for tracking gradient stability, scale, and ratio metrics.

    Computes per-parameter and global gradient metrics (mean, std, norm and
    grad/weight ratio) from the gradients a backward pass returns. Records
    are grouped by epoch, either averaged over the epoch or kept per step,
    and can be saved automatically to JSON or CSV.

    Attributes:
        grad_log_mode (str): Logging mode, either "step" or "epoch".
        grad_log_every (int): Frequency of step logging (if mode="step").
        per_parameter (bool): Whether to record per-parameter statistics.
        autosave (str or None): Format for autosaving logs ("json" or "csv").
        save_path (str): Directory path for saving logs.
        records (dict): Logged gradient statistics.
    """
    def __init__(self, grad_log_mode="epoch", grad_log_every=1,
                 per_parameter=True, autosave=None, save_path="grads_logs"):
        if grad_log_mode not in ("step", "epoch"):
            raise ValueError("grad_log_mode must be 'step' or 'epoch'")
        if autosave not in (None, "json", "csv"):
            raise ValueError("autosave must be None, 'json' or 'csv'")
        self.grad_log_mode = grad_log_mode
        self.grad_log_every = grad_log_every
        self.per_parameter = per_parameter

        self.records = {}
        self.last_epoch = -1
        self.epoch_accums = {}

        self.autosave = autosave
        self.save_path = save_path
        if autosave:
            os.makedirs(save_path, exist_ok=True)

    # -------------------------------
    # Core Computations
    # -------------------------------
    def _collect_param_accums(self, param, grad):
        """Collect accumulators for a single parameter."""
        grad_sq_sum = xp.sum(grad * grad)
        weight_norm = xp.linalg.norm(param.data)
        return {
            "grad_sum": float(xp.sum(grad)),
            "grad_sq_sum": float(grad_sq_sum),
            "count": grad.size,
            "ratio": float(xp.sqrt(grad_sq_sum) / (weight_norm + 1e-12)),
            "updates": 1,
        }

    def _finalize_stats(self, acc):
        """Convert accumulators into scalar statistics."""
        count = max(acc["count"], 1)
        grad_mean = acc["grad_sum"] / count
        grad_var = acc["grad_sq_sum"] / count - grad_mean ** 2
        return {
            "grad_norm": float(xp.sqrt(acc["grad_sq_sum"] / acc["updates"])),
            "grad_mean": float(grad_mean),
            "grad_std": float(xp.sqrt(max(grad_var, 0.0))),
            "grad/weight": acc["ratio"] / acc["updates"],
        }

    def _collect(self, named_parameters, gradients):
        accums = {}
        for name, param in named_parameters:
            if name in gradients:
                accums[name] = self._collect_param_accums(param, gradients[name])
        return accums

    def _global_stats(self, accums):
        if not accums:
            return {"total_grad_norm": 0.0, "grad_mean": 0.0, "grad/weight_mean": 0.0}
        total = {k: sum(acc[k] for acc in accums.values()) for k in ("grad_sum", "grad_sq_sum", "count")}
        updates = max(acc["updates"] for acc in accums.values())
        return {
            "total_grad_norm": float(xp.sqrt(total["grad_sq_sum"] / updates)),
            "grad_mean": total["grad_sum"] / max(total["count"], 1),
            "grad/weight_mean": sum(acc["ratio"] / acc["updates"] for acc in accums.values()) / len(accums),
        }

    def _stats(self, accums):
        stats = {}
        if self.per_parameter:
            for name, acc in accums.items():
                for k, v in self._finalize_stats(acc).items():
                    stats[f"{name}_{k}"] = v
        stats.update(self._global_stats(accums))
        return stats

    # -------------------------------
    # Logging
    # -------------------------------
    def add(self, named_parameters, gradients, epoch, step, n_steps):
        """
        Collect and log gradient statistics.

        Args:
            named_parameters: (name, Parameter) pairs, e.g. `network.named_parameters()`.
            gradients: Mapping from the same names to gradient arrays.
            epoch (int): Current epoch number.
            step (int): Current step index within the epoch.
            n_steps (int): Total steps per epoch.
        """
        named_parameters = list(named_parameters)

        if self.grad_log_mode == "epoch":
            if epoch > self.last_epoch:
                self.epoch_accums = {}
                self.last_epoch = epoch

            for name, acc in self._collect(named_parameters, gradients).items():
                total = self.epoch_accums.setdefault(name, {k: 0.0 for k in acc})
                for k, v in acc.items():
                    total[k] += v

            if step + 1 == n_steps:
                self.records[f"Epoch_{epoch}"] = self._stats(self.epoch_accums)
                self._autosave()

        elif self.grad_log_every is None or step % self.grad_log_every == 0:
            step_records = self._stats(self._collect(named_parameters, gradients))
            self.records.setdefault(f"Epoch_{epoch}", {})[f"step_{step}"] = step_records
            self._autosave()

    # -------------------------------
    # Export
    # -------------------------------
    def to_json(self, filepath):
        """Save all logged statistics to a JSON file."""
        with open(filepath, "w") as f:
            json.dump(self.records, f, indent=4)

    def to_csv(self, filepath):
        """Save flattened log data to CSV."""
        flat_records = []
        for epoch, data in self.records.items():
            if isinstance(data, dict) and any(k.startswith("step_") for k in data):
                for step, vals in data.items():
                    row = {"epoch": epoch, "step": step}
                    row.update(vals)
                    flat_records.append(row)
            else:
                row = {"epoch": epoch}
                row.update(data)
                flat_records.append(row)

        keys = sorted({k for row in flat_records for k in row.keys()})
        with open(filepath, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=keys)
            writer.writeheader()
            writer.writerows(flat_records)

    def _autosave(self):
        """Save logs if autosave is enabled."""
        if self.autosave == "json":
            self.to_json(os.path.join(self.save_path, "grads_logs.json"))
        elif self.autosave == "csv":
            self.to_csv(os.path.join(self.save_path, "grads_logs.csv"))

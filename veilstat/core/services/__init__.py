# veilstat - shared numeric helpers used by the evaluators

from clipjobs.errors import TranscoderError
from clipjobs.models import Job


class FakeTranscoder:
    """Stands in for MediaConvert; records every submission."""

    def __init__(self):
        self.submissions = []
        self.statuses = {}
        self.fail_submit = False
        self.fail_status = False
        self.on_submit = None
        self.byte_size = 4096

    def submit_combine_job(self, inputs, output, metadata=None, client=None):
        if self.fail_submit:
            raise TranscoderError("service unavailable")
        if self.on_submit is not None:
            self.on_submit()
        self.submissions.append({"inputs": list(inputs), "output": output, "metadata": dict(metadata or {})})
        return f"svc-{len(self.submissions)}"

    def get_status(self, service_id, client=None):
        if self.fail_status:
            raise TranscoderError("throttled")
        return self.statuses[service_id]

    def get_file_details(self, path, client=None):
        return {"byte_size": self.byte_size}


class FakeClipEvents:
    """
    Clip event stream replaying ``events`` in order. ``before_each`` runs
    just before an event is delivered, i.e. while the job is still waiting.
    """

    def __init__(self, events=(), before_each=None):
        self._events = list(events)
        self._before_each = before_each
        self.entered = False
        self.exited = False
        self.delivered = 0

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exited = True

    def __iter__(self):
        for event in self._events:
            if self._before_each is not None:
                self._before_each(event)
            self.delivered += 1
            yield event


def set_job(job, **fields):
    Job.objects.filter(pk=job.pk).update(**fields)
    return Job.objects.get(pk=job.pk)


def reload(job):
    return Job.objects.get(pk=job.pk)

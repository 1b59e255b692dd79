# logplumb

logplumb collects application logs from where tasks write them and routes
log envelopes to the sinks that read them. It has two halves:

- **The DEA logging agent** watches an `instances.json` file that describes
  the tasks on a host. For every tracked task it connects to the task's
  `stdout.sock` and `stderr.sock` Unix sockets, reads the output line by
  line and hands each line on as a `LogRecord`.
- **The routing core** keeps a registry of sinks (per-application sinks and
  firehose subscriptions) and offers envelopes to them through channels,
  dropping rather than waiting when a consumer is not ready.

It needs only the standard library. The task listener uses Unix domain
sockets, so it runs on POSIX systems.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Running the agent

The package installs one command:

```
logplumb-deaagent --help
```

Options (each may be given with one or two dashes):

| Option | Default | Meaning |
| --- | --- | --- |
| `-config` | `config/dea_logging_agent.json` | JSON config file of the agent |
| `-instancesFile` | `/var/vcap/data/dea_next/db/instances.json` | the instances file to watch |
| `-logFile` | (standard output) | file for the agent's own log |
| `-debug` | off | debug-level logging |

The config file is a JSON object; keys match ignoring case and underscores,
so `MetronAddress` and `metronaddress` both fill `metron_address`. It may
hold `Index`, `MetronAddress`, `SharedSecret`, `EtcdUrls` and
`EtcdMaxConcurrentRequests`. A config without a Metron address is refused
with `ConfigError`.

The agent writes every log line it collects to standard output as one JSON
object per line, with the keys `app_id`, `source_type`, `source_instance`,
`message_type` (`"OUT"` or `"ERR"`) and `message`. Stop it with Ctrl-C.

## Using the library

### Reading tasks

`logplumb.task.read_tasks` parses the contents of an `instances.json`
file (bytes or text) and returns a dict of `Task` objects keyed by
`Task.identifier()`, the task's `<container path>/jobs/<job id>` directory.

- Instances are tracked when they have a container path and a non-zero job
  id and are in the `RUNNING`, `STARTING` or `STOPPING` state; their source
  name is `"App"`.
- Staging tasks are tracked when they have a non-zero job id; their source
  name is `"STG"` and their application id comes from
  `staging_message.app_id`.
- Empty data, malformed JSON and fields of the wrong type raise
  `ValueError`.

```python
from logplumb.task import Task, read_tasks

task = Task(
    application_id="4aa9506e-277f-41ab-b764-a35c0b96fa1b",
    warden_job_id=272,
    warden_container_path="/var/vcap/data/warden/depot/16vbs06ibo1",
)
task.identifier()
# '/var/vcap/data/warden/depot/16vbs06ibo1/jobs/272'

with open("instances.json", "rb") as fh:
    tasks = read_tasks(fh.read())
```

### Listening to a task

`logplumb.task_listener.TaskListener` opens a task's two sockets when it is
created, trying each up to ten times at 100 ms intervals. If either cannot
be opened it raises `TaskListenerError` and leaves no socket open.

`start_listening()` reads both streams and calls the `emit` callback with a
`LogRecord` for every non-empty line; it blocks until both streams have
stopped. When either stream ends, both sockets are closed.
`stop_listening()` closes both sockets. `MessageType.OUT` and
`MessageType.ERR` tell the streams apart, and `socket_name(message_type)`
gives the socket file name for each.

```python
from logplumb.task_listener import TaskListener

listener = TaskListener(task, emit=print)
listener.start_listening()   # blocks until the streams end
```

### Running the agent from code

```python
from logplumb.agent import Agent

agent = Agent("/var/vcap/data/dea_next/db/instances.json", emit=print)
agent.start()
...
agent.stop()
```

`Agent.start()` polls the instances file in the background every 100 ms.
When the file changes it is read again: new tasks get a listener in a
thread of their own, and listeners of tasks no longer listed are stopped.
If the file is deleted, every listener is stopped. A file that cannot be
read or parsed is logged and tried again on the next change.
`Agent.stop()` stops polling and every listener, and waits for them.

### Blacklisting drain addresses

`logplumb.iprange` checks whether a URL's host falls inside any of a list
of inclusive `IPRange`s. Host names are resolved first.

```python
from logplumb.iprange import IPRange, ip_outside_of_ranges, validate_ip_addresses

ranges = [IPRange(start="127.0.1.2", end="127.0.3.4")]
validate_ip_addresses(ranges)                             # raises on a bad range
ip_outside_of_ranges("syslog://127.0.2.3:3000", ranges)   # False
ip_outside_of_ranges("http://127.0.0.1", ranges)          # True
ip_outside_of_ranges("http://127.0.0.1", [])              # True
```

`validate_ip_addresses` and `ip_outside_of_ranges` raise `IPRangeError`
(a `ValueError`) for an invalid address, a range whose start comes after
its end, a URL without a host, or a host that cannot be resolved.

### Channels and sinks

`logplumb.sink_wrapper.Channel` is a thread-safe FIFO hand-off:

- `send(item)` waits for room (or, with capacity 0, for a receiver);
- `try_send(item)` sends only if that needs no waiting and says whether it
  did;
- `receive(timeout=None)` takes the oldest item, raising `TimeoutError` if
  none arrives in time;
- `close()` refuses further sends; a closed channel is drained by its
  receivers and then raises `ChannelClosed`, as does closing it twice;
- `len(channel)` counts queued items, `channel.closed` tells whether it is
  closed, and iterating a channel yields items until it is closed.

A sink is any object that satisfies the `Sink` protocol: `stream_id` and
`identifier` attributes, and `run(channel)`, `should_receive_errors()`,
`instrumentation_metric()` (returning a `Metric`) and
`update_dropped_message_count(count)`.

### Routing to sinks

`logplumb.grouped_sinks.GroupedSinks` holds the registered sinks, each
paired with the `Channel` its consumer reads from.

```python
from logplumb.grouped_sinks import GroupedSinks
from logplumb.sink_wrapper import Channel, Metric


class PrintSink:
    def __init__(self, app_id, name):
        self.stream_id = app_id
        self.identifier = name
        self.dropped = 0

    def run(self, channel):
        for envelope in channel:
            print(envelope)

    def should_receive_errors(self):
        return False

    def instrumentation_metric(self):
        return Metric("numberOfMessagesLost", {"appId": self.stream_id}, self.dropped)

    def update_dropped_message_count(self, count):
        self.dropped += count


sinks = GroupedSinks()
channel = Channel(capacity=10)
sinks.register_app_sink(channel, PrintSink("app-1", "printer"))
sinks.broadcast("app-1", "an envelope")
channel.receive()   # 'an envelope'
```

- `register_app_sink` and `register_firehose_sink` add a sink and return
  `False` for an empty stream id (or, for app sinks, an empty identifier)
  or a duplicate identifier.
- `broadcast(app_id, message)` offers the message to every sink of the app
  without waiting; a sink whose channel has no room counts it as dropped.
  The message then goes to every firehose subscription.
- `broadcast_error(app_id, message)` sends only to the app's sinks whose
  `should_receive_errors()` is true, waiting until each channel takes it,
  then to the firehoses.
- Within one firehose subscription (`logplumb.firehose_group.FirehoseGroup`)
  messages go to its sinks in turn; if the sink whose turn it is cannot take
  the message at once, the message is dropped.
- `close_and_delete`, `close_and_delete_firehose` and `delete_all` remove
  sinks and close their channels; an emptied firehose subscription is
  removed.
- `count_for(app_id)` counts an app's sinks; `drain_for(app_id, drain_url)`
  finds the sink registered under that identifier; `dump_for(app_id)` finds
  the sink registered under the app id itself; `container_metrics_for(app_id)`
  finds the sink registered as `container-metrics-<app_id>`.
- `get_all_instrumentation_metrics()` returns every app sink's non-zero
  metric.

### Server configuration

`logplumb.config.load_config(path)` reads a JSON `Config`; keys match
ignoring case and underscores (`DropsondeIncomingMessagesPort`,
`MaxRetainedLogMessages`, `BlackListIps`, and so on). `Config.validate()`
raises `ConfigError` when `max_retained_log_messages` is 0, and
`IPRangeError` when the blacklist holds an invalid range.
`parse_config(debug, config_file, log_file_path)` loads the config and
returns it with a logger named `doppler`, at debug or info level, writing to
the given file or to standard output. `HEARTBEAT_INTERVAL` is 10 seconds.

### Heartbeats

`logplumb.heartbeat.start_heartbeats(local_ip, ttl, config, store_adapter)`
asks a `StoreAdapter` to keep a `StoreNode` at `heartbeat_key(config)`
(`/healthstatus/doppler/<zone>/<job name>/<index>`) alive with the local IP
as its value and `ttl` (seconds or a `timedelta`) as its time to live. It
returns the function that stops the heartbeats, or `None` without doing
anything when the config lists no store URLs. Without an adapter it raises
`HeartbeatError`; errors from the adapter propagate.

## What the package does not do

- The agent does not send records over the network: collected lines are
  written to standard output as JSON, and the Metron address in its config
  is only checked for being present.
- There is no server that receives envelopes and feeds `GroupedSinks`, no
  websocket endpoint for clients, and no concrete syslog, dump or
  container-metric sinks; the package provides the registry, the channels
  and the `Sink` protocol they would plug into.
- There is no store client: `StoreAdapter` is a protocol, and a working
  key-value store has to be supplied by the caller.
"""Dashboard HTML with inline CSS and vanilla JS."""


def get_dashboard_html() -> str:
    return """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>AI Task Tracker</title>
<style>
  :root {
    --bg: #0d1117; --surface: #161b22; --border: #30363d;
    --text: #e6edf3; --text-muted: #8b949e;
    --pending: #8b949e; --running: #58a6ff; --completed: #3fb950;
    --failed: #f85149; --paused: #d29922; --disconnected: #db6d28;
  }
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Helvetica, Arial, sans-serif;
         background: var(--bg); color: var(--text); line-height: 1.5; }
  .container { max-width: 960px; margin: 0 auto; padding: 24px 16px; }

  header { display: flex; justify-content: space-between; align-items: center;
           padding-bottom: 16px; border-bottom: 1px solid var(--border); margin-bottom: 24px; }
  header h1 { font-size: 20px; font-weight: 600; }
  header select { background: var(--surface); color: var(--text); border: 1px solid var(--border);
                  padding: 6px 12px; border-radius: 6px; font-size: 14px; }

  .summary { display: flex; gap: 16px; margin-bottom: 16px; flex-wrap: wrap; font-size: 14px; }
  .stat .dot { width: 10px; height: 10px; border-radius: 50%; display: inline-block; margin-right: 6px; }
  .envs { background: var(--surface); border: 1px solid var(--border); border-radius: 8px;
          padding: 12px 16px; margin-bottom: 20px; font-size: 13px; color: var(--text-muted); }
  .envs code { background: var(--bg); padding: 2px 6px; border-radius: 4px; }

  .task-list { display: flex; flex-direction: column; gap: 2px; }
  .task-card { background: var(--surface); border: 1px solid var(--border);
               border-radius: 8px; padding: 12px 16px; }
  .task-header { display: flex; align-items: center; gap: 10px; }
  .task-title { flex: 1; font-size: 14px; }
  .task-id { font-size: 12px; color: var(--text-muted); font-family: monospace; }
  .task-details { font-size: 12px; color: var(--text-muted); margin-top: 6px; }
  .badge { display: inline-block; padding: 2px 10px; border-radius: 12px; font-size: 11px;
           font-weight: 600; text-transform: uppercase; letter-spacing: 0.5px; }
  .actions { margin-top: 8px; display: flex; gap: 6px; }
  .actions button { background: var(--bg); color: var(--text); border: 1px solid var(--border);
                    border-radius: 6px; padding: 3px 10px; font-size: 12px; cursor: pointer; }
  .actions button:hover { border-color: var(--running); }
  .error { color: var(--failed); font-size: 12px; margin-top: 4px; }
  .empty { color: var(--text-muted); text-align: center; padding: 32px; }
</style>
</head>
<body>
<div class="container">
  <header>
    <h1>AI Task Tracker</h1>
    <select id="status-filter">
      <option value="">All statuses</option>
      <option>pending</option><option>running</option><option>paused</option>
      <option>disconnected</option><option>completed</option><option>failed</option>
    </select>
  </header>
  <div class="summary" id="summary"></div>
  <div class="envs" id="envs"></div>
  <div class="task-list" id="tasks"></div>
</div>

<script>
const COLORS = {pending: '--pending', running: '--running', completed: '--completed',
                failed: '--failed', paused: '--paused', disconnected: '--disconnected'};
let refreshTimer = null;

async function loadDashboard() {
  const status = document.getElementById('status-filter').value;
  const [summary, tasks] = await Promise.all([
    fetch('/api/summary').then(r => r.json()),
    fetch('/api/tasks' + (status ? `?status=${status}` : '')).then(r => r.json()),
  ]);
  renderSummary(summary);
  const items = tasks.items || [];
  const actions = await Promise.all(
    items.map(t => fetch(`/api/tasks/${encodeURIComponent(t.id)}/actions`).then(r => r.json()))
  );
  renderTasks(items, actions);
}

function renderSummary(summary) {
  document.getElementById('summary').innerHTML = Object.entries(summary.counts).map(([s, n]) =>
    `<span class="stat"><span class="dot" style="background: var(${COLORS[s]})"></span>${s}: ${n}</span>`
  ).join('');
  const envs = summary.activeEnvironments;
  document.getElementById('envs').innerHTML = envs.length
    ? 'Occupied: ' + envs.map(e =>
        `<code>${esc(e.environmentKey)}</code> on ${esc(e.branchName || 'default branch')} (${e.taskCount})`
      ).join(' &middot; ')
    : 'No environments occupied.';
}

function renderTasks(tasks, actions) {
  const el = document.getElementById('tasks');
  if (!tasks.length) {
    el.innerHTML = '<div class="empty">No tasks.</div>';
    return;
  }
  el.innerHTML = tasks.map((task, i) => {
    const buttons = actions[i].actions.map(a =>
      `<button onclick="changeStatus('${esc(task.id)}', '${a.status}')">${esc(a.label)}</button>`
    ).join('');
    const branch = task.branchName ? ` on <code>${esc(task.branchName)}</code>` : '';
    return `<div class="task-card">
      <div class="task-header">
        <span class="badge" style="color: var(${COLORS[task.status]})">${esc(task.status)}</span>
        <span class="task-title">${esc(task.description)}</span>
        <span class="task-id">${esc(task.id)}</span>
      </div>
      <div class="task-details">${esc(task.environmentKey)}${branch} &middot; ${esc(task.aiVendor)}</div>
      ${task.errorMessage ? `<div class="error">${esc(task.errorMessage)}</div>` : ''}
      ${buttons ? `<div class="actions">${buttons}</div>` : ''}
    </div>`;
  }).join('');
}

async function changeStatus(taskId, status) {
  const resp = await fetch(`/api/tasks/${encodeURIComponent(taskId)}`, {
    method: 'PATCH',
    headers: {'Content-Type': 'application/json'},
    body: JSON.stringify({status}),
  });
  const data = await resp.json();
  if (!resp.ok) {
    alert(data.error.message);
  } else if (data.conflict) {
    alert(data.conflict.message);
  }
  loadDashboard();
}

function esc(s) {
  if (!s) return '';
  const d = document.createElement('div');
  d.textContent = s;
  return d.innerHTML;
}

document.getElementById('status-filter').addEventListener('change', loadDashboard);
refreshTimer = setInterval(loadDashboard, 30000);
loadDashboard();
</script>
</body>
</html>"""

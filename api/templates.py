"""
Review Broker: Review Page

Single static page served at /enhance?session=<id>. Loads the session,
shows a countdown from createdAt/timeoutMs (advisory only), and posts the
reviewer's decision back to the gateway.
"""

REVIEW_UI_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Prompt Review</title>
  <style>
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body {
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
      background: #f5f5f5; min-height: 100vh; padding: 20px;
      display: flex; align-items: center; justify-content: center;
    }
    .container {
      background: white; border-radius: 8px; box-shadow: 0 2px 10px rgba(0,0,0,0.1);
      max-width: 900px; width: 100%; padding: 24px;
    }
    .header { display: flex; justify-content: space-between; align-items: center; margin-bottom: 16px; }
    h1 { font-size: 20px; color: #333; }
    #countdown { font-family: monospace; color: #666; }
    #countdown.urgent { color: #d32f2f; font-weight: bold; }
    textarea {
      width: 100%; min-height: 360px; padding: 12px; font-size: 14px; line-height: 1.5;
      border: 1px solid #ddd; border-radius: 4px; font-family: monospace; resize: vertical;
    }
    .actions { display: flex; gap: 8px; margin-top: 16px; flex-wrap: wrap; }
    button { padding: 10px 18px; border: none; border-radius: 4px; font-size: 14px; cursor: pointer; }
    button:disabled { opacity: 0.5; cursor: not-allowed; }
    .primary { background: #1976d2; color: white; }
    .secondary { background: #e0e0e0; color: #333; }
    .danger { background: #d32f2f; color: white; }
    #status { margin-top: 12px; font-size: 13px; min-height: 18px; }
    #status.error { color: #d32f2f; }
    #status.success { color: #388e3c; }
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>Review Prompt</h1>
      <span id="countdown"></span>
    </div>
    <textarea id="content" placeholder="Loading..."></textarea>
    <div class="actions">
      <button class="primary" id="submit">Send</button>
      <button class="secondary" id="reprocess">Enhance Again</button>
      <button class="secondary" id="original">Use Original</button>
      <button class="danger" id="end">End Conversation</button>
    </div>
    <div id="status"></div>
  </div>
  <script>
    const sessionId = new URLSearchParams(window.location.search).get('session');
    const content = document.getElementById('content');
    const buttons = Array.from(document.querySelectorAll('button'));
    let deadline = null;
    let timer = null;

    function showStatus(message, kind) {
      const el = document.getElementById('status');
      el.textContent = message;
      el.className = kind || '';
    }

    function setBusy(busy) {
      buttons.forEach(b => { b.disabled = busy; });
      content.disabled = busy;
    }

    function tick() {
      const remaining = deadline - Date.now();
      const el = document.getElementById('countdown');
      if (remaining <= 0) {
        el.textContent = 'expired';
        clearInterval(timer);
        setBusy(true);
        showStatus('Session timed out. The original prompt will be used.', 'error');
        return;
      }
      const s = Math.floor(remaining / 1000);
      el.textContent = Math.floor(s / 60) + ':' + String(s % 60).padStart(2, '0');
      el.className = s < 60 ? 'urgent' : '';
    }

    async function post(path, body) {
      const res = await fetch(path, {
        method: 'POST',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify(body),
      });
      const data = await res.json();
      if (!res.ok) throw new Error(data.error || ('HTTP ' + res.status));
      return data;
    }

    async function decide(value, message) {
      setBusy(true);
      try {
        await post('/api/submit', { sessionId: sessionId, content: value });
        clearInterval(timer);
        showStatus(message + ' You can close this page.', 'success');
      } catch (err) {
        showStatus(err.message, 'error');
        setBusy(false);
      }
    }

    document.getElementById('submit').onclick = () => decide(content.value, 'Sent.');
    document.getElementById('original').onclick = () => decide('__USE_ORIGINAL__', 'Original prompt will be used.');
    document.getElementById('end').onclick = () => decide('__END_CONVERSATION__', 'Conversation ended.');
    document.getElementById('reprocess').onclick = async () => {
      setBusy(true);
      showStatus('Enhancing...');
      try {
        const data = await post('/api/re-enhance', { sessionId: sessionId, currentPrompt: content.value });
        content.value = data.currentContent;
        showStatus('Enhanced.', 'success');
      } catch (err) {
        showStatus(err.message, 'error');
      }
      setBusy(false);
    };

    if (!sessionId) {
      setBusy(true);
      showStatus('No session ID provided', 'error');
    } else {
      fetch('/api/session?session=' + encodeURIComponent(sessionId))
        .then(res => res.json().then(data => ({ ok: res.ok, data: data })))
        .then(({ ok, data }) => {
          if (!ok) throw new Error(data.error || 'Failed to load session');
          content.value = data.currentContent;
          deadline = data.createdAt + data.timeoutMs;
          tick();
          timer = setInterval(tick, 1000);
        })
        .catch(err => { setBusy(true); showStatus(err.message, 'error'); });
    }
  </script>
</body>
</html>
"""
